"""
User-facing messages for ledger errors, in English and Vietnamese.

Input problems are reported with their specific detail. Anything raised
by the store is replaced with a generic "could not complete" message.
"""

from family_ledger.errors import BudgetExceededWarning, LedgerError

SUPPORTED_LANGUAGES = ("en", "vi")

_MESSAGES: dict[str, dict[str, str]] = {
    "validation": {
        "en": "Please check your input: {detail}",
        "vi": "Vui lòng kiểm tra lại thông tin: {detail}",
    },
    "access_denied": {
        "en": "You don't have permission to do this.",
        "vi": "Bạn không có quyền thực hiện thao tác này.",
    },
    "insufficient_funds": {
        "en": "Not enough money in this goal.",
        "vi": "Mục tiêu không đủ số dư.",
    },
    "not_found": {
        "en": "This item no longer exists.",
        "vi": "Mục này không còn tồn tại.",
    },
    "invalid_state": {
        "en": "This request has already been handled.",
        "vi": "Yêu cầu này đã được xử lý.",
    },
    "budget_exceeded": {
        "en": "{detail}",
        "vi": "{detail}",
    },
    "infrastructure": {
        "en": "The system could not complete this right now. Nothing was changed, please try again.",
        "vi": "Hệ thống chưa thể hoàn tất thao tác. Không có thay đổi nào, vui lòng thử lại.",
    },
    "unexpected": {
        "en": "Something went wrong. Please try again.",
        "vi": "Đã xảy ra lỗi. Vui lòng thử lại.",
    },
}


def user_message(error: Exception, language: str = "en") -> str:
    """Translate an exception into a message safe to show to the user."""
    if language not in SUPPORTED_LANGUAGES:
        language = "en"

    if not isinstance(error, LedgerError):
        return _MESSAGES["unexpected"][language]

    if isinstance(error, BudgetExceededWarning):
        detail = error.check.message
    elif error.user_facing:
        detail = str(error)
    else:
        detail = ""

    template = _MESSAGES.get(error.code, _MESSAGES["unexpected"])[language]
    return template.format(detail=detail)


def is_input_problem(error: Exception) -> bool:
    """True when the user can fix the failure by changing their input."""
    return isinstance(error, LedgerError) and error.code in (
        "validation",
        "insufficient_funds",
        "budget_exceeded",
    )
