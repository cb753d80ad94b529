# =============================================================================
# savvi_core/state/settings_store.py
# User preferences: language, currency, theme
# =============================================================================
"""
SettingsStore - process-wide preference state persisted to local storage.

Independent of network and session state; loads synchronously at startup.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List

from savvi_core.errors import ValidationError
from savvi_core.logging import get_logger
from savvi_core.offline.local_storage import LocalStorage

logger = get_logger(__name__)

LANGUAGE_KEY = "savvi-language"
CURRENCY_KEY = "savvi-currency"
DARK_MODE_KEY = "savvi-darkmode"

LANGUAGES = ("en", "id")
DEFAULT_LANGUAGE = "en"
DEFAULT_CURRENCY = "USD"

CURRENCIES: Dict[str, Dict[str, str]] = {
    "USD": {"symbol": "$", "name": "US Dollar"},
    "IDR": {"symbol": "Rp", "name": "Indonesian Rupiah"},
    "EUR": {"symbol": "€", "name": "Euro"},
    "SGD": {"symbol": "S$", "name": "Singapore Dollar"},
    "GBP": {"symbol": "£", "name": "British Pound"},
    "JPY": {"symbol": "¥", "name": "Japanese Yen"},
    "AUD": {"symbol": "A$", "name": "Australian Dollar"},
    "CAD": {"symbol": "C$", "name": "Canadian Dollar"},
}

ZERO_DECIMAL_CURRENCIES = ("IDR", "JPY")

# Only the labels the Streamlit view renders; unknown keys fall back to the key
TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "dashboard": "Dashboard",
        "transactions": "Transactions",
        "goals": "Goals",
        "owed": "Owed",
        "profile": "Profile",
        "total_balance": "Total Balance",
        "goals_progress": "Goals Progress",
        "net_debt": "Net Debt",
        "you_owe": "You owe",
        "others_owe_you": "Others owe you",
        "monthly_summary": "Monthly Summary",
        "money_buckets": "Money Buckets",
        "recent_transactions": "Recent Transactions",
        "income": "Income",
        "expense": "Expense",
        "sign_in": "Sign In",
        "sign_up": "Sign up",
        "sign_out": "Sign Out",
        "create_account": "Create Account",
        "forgot_password": "Forgot password?",
        "email": "Email",
        "password": "Password",
        "full_name": "Full Name",
        "language": "Language",
        "currency": "Currency",
        "dark_mode": "Dark Mode",
    },
    "id": {
        "dashboard": "Dasbor",
        "transactions": "Transaksi",
        "goals": "Target",
        "owed": "Utang",
        "profile": "Profil",
        "total_balance": "Total Saldo",
        "goals_progress": "Progres Target",
        "net_debt": "Utang Bersih",
        "you_owe": "Anda berutang",
        "others_owe_you": "Orang lain berutang pada Anda",
        "monthly_summary": "Ringkasan Bulanan",
        "money_buckets": "Kantong Uang",
        "recent_transactions": "Transaksi Terbaru",
        "income": "Pemasukan",
        "expense": "Pengeluaran",
        "sign_in": "Masuk",
        "sign_up": "Daftar",
        "sign_out": "Keluar",
        "create_account": "Buat Akun",
        "forgot_password": "Lupa kata sandi?",
        "email": "Email",
        "password": "Kata Sandi",
        "full_name": "Nama Lengkap",
        "language": "Bahasa",
        "currency": "Mata Uang",
        "dark_mode": "Mode Gelap",
    },
}


@dataclass
class Settings:
    """Current preference values."""
    language: str = DEFAULT_LANGUAGE
    currency: str = DEFAULT_CURRENCY
    dark_mode: bool = True


class SettingsStore:
    """
    Usage:
        settings = SettingsStore(storage)
        settings.set_currency("IDR")
        settings.format_currency(1500000)   # "Rp1,500,000"
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self._callbacks: List[Callable[[Settings], None]] = []
        self._settings = self._load()

    def _load(self) -> Settings:
        settings = Settings()

        language = self.storage.get_item(LANGUAGE_KEY)
        if language in LANGUAGES:
            settings.language = language
        elif language is not None:
            logger.warning(f"Ignoring unknown saved language: {language}")

        currency = self.storage.get_item(CURRENCY_KEY)
        if currency in CURRENCIES:
            settings.currency = currency
        elif currency is not None:
            logger.warning(f"Ignoring unknown saved currency: {currency}")

        # Dark unless explicitly saved as "false"
        saved_dark = self.storage.get_item(DARK_MODE_KEY)
        settings.dark_mode = saved_dark == "true" if saved_dark is not None else True

        return settings

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def language(self) -> str:
        return self._settings.language

    @property
    def currency(self) -> str:
        return self._settings.currency

    @property
    def dark_mode(self) -> bool:
        return self._settings.dark_mode

    def register_callback(self, callback: Callable[[Settings], None]) -> None:
        self._callbacks.append(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._settings)
            except Exception as e:
                logger.error(f"Settings callback error: {e}")

    def set_language(self, language: str) -> None:
        if language not in LANGUAGES:
            raise ValidationError(f"Unsupported language: {language}", field="language", value=language)
        self._settings.language = language
        self.storage.set_item(LANGUAGE_KEY, language)
        self._notify_callbacks()

    def set_currency(self, currency: str) -> None:
        if currency not in CURRENCIES:
            raise ValidationError(f"Unsupported currency: {currency}", field="currency", value=currency)
        self._settings.currency = currency
        self.storage.set_item(CURRENCY_KEY, currency)
        self._notify_callbacks()

    def set_dark_mode(self, dark: bool) -> None:
        self._settings.dark_mode = bool(dark)
        self.storage.set_item(DARK_MODE_KEY, "true" if dark else "false")
        logger.info(f"Theme change: {'dark' if dark else 'light'}")
        self._notify_callbacks()

    def t(self, key: str) -> str:
        """Translate a label key for the current language."""
        return TRANSLATIONS[self.language].get(key, key)

    def format_currency(self, amount: float, show_symbol: bool = True) -> str:
        """
        Format `amount` in the selected currency.

        IDR and JPY are shown without decimals; Indonesian uses "." for
        thousands and "," for decimals.
        """
        decimals = 0 if self.currency in ZERO_DECIMAL_CURRENCIES else 2
        value = round(float(amount), decimals)
        formatted = f"{value:,.{decimals}f}"

        if self.language == "id":
            formatted = formatted.replace(",", "_").replace(".", ",").replace("_", ".")

        if show_symbol:
            return f"{CURRENCIES[self.currency]['symbol']}{formatted}"
        return formatted
