from typing import Dict

from .config import settings

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "ar": {
        "not_found": "العنصر غير موجود",
        "errorOccurred": "حدث خطأ، يرجى المحاولة مرة أخرى",
        "analyticsTitle": "تحليلات {name}",
        "serviceUnavailable": "الخدمة غير متاحة",
        "serverDown": "عذراً، الخادم متوقف حالياً للصيانة. يرجى المحاولة لاحقاً.",
        "exportFailed": "فشل التصدير",
        "pdfOnly": "صيغة PDF فقط مدعومة",
    },
    "en": {
        "not_found": "Not found",
        "errorOccurred": "An error occurred, please try again",
        "analyticsTitle": "{name} analytics",
        "serviceUnavailable": "Service unavailable",
        "serverDown": "Sorry, the server is down for maintenance. Please try again later.",
        "exportFailed": "Export failed",
        "pdfOnly": "Only PDF format is supported",
    },
}


def translate(lang: str, key: str) -> str:
    """Looks up ``key`` in ``lang``, then in the default language, then returns the key itself."""
    return (
        TRANSLATIONS.get(lang, {}).get(key)
        or TRANSLATIONS[settings.DEFAULT_LANG].get(key)
        or key
    )
