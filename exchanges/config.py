"""
Exchanges - Credential Configuration.

============================================================
PURPOSE
============================================================
Loads one ExchangeCredential per supported venue from the
process environment (after ``load_dotenv``).

A venue with no keys is still returned, in public-data-only
mode, so that price aggregation keeps working without any
account set up.

============================================================
ENVIRONMENT
============================================================
BINANCE_API_KEY, BINANCE_API_SECRET, BINANCE_SANDBOX
OKX_API_KEY, OKX_SECRET_KEY, OKX_PASSPHRASE, OKX_SANDBOX
BYBIT_API_KEY, BYBIT_API_SECRET, BYBIT_SANDBOX
GATE_API_KEY, GATE_API_SECRET
BITGET_API_KEY, BITGET_SECRET_KEY, BITGET_PASSPHRASE
<VENUE>_ACTIVE (default true)

============================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .logging_utils import mask_value
from .types import ExchangeCredential


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VenueEnvSpec:
    """Environment variable names for one venue."""

    name: str
    key_var: str
    secret_var: str
    passphrase_var: Optional[str] = None
    sandbox_var: Optional[str] = None

    @property
    def prefix(self) -> str:
        return self.name.upper()


VENUE_ENV: Dict[str, VenueEnvSpec] = {
    "binance": VenueEnvSpec("binance", "BINANCE_API_KEY", "BINANCE_API_SECRET", sandbox_var="BINANCE_SANDBOX"),
    "okx": VenueEnvSpec("okx", "OKX_API_KEY", "OKX_SECRET_KEY", "OKX_PASSPHRASE", "OKX_SANDBOX"),
    "bybit": VenueEnvSpec("bybit", "BYBIT_API_KEY", "BYBIT_API_SECRET", sandbox_var="BYBIT_SANDBOX"),
    "gate": VenueEnvSpec("gate", "GATE_API_KEY", "GATE_API_SECRET"),
    "bitget": VenueEnvSpec("bitget", "BITGET_API_KEY", "BITGET_SECRET_KEY", "BITGET_PASSPHRASE"),
}

PASSPHRASE_VENUES = frozenset({"okx", "bitget"})


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ExchangeConfigManager:
    """
    Credential store for every supported venue.

    Loaded once; ``reload()`` re-reads the environment.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None, use_dotenv: bool = True):
        """
        Args:
            environ: Mapping to read instead of ``os.environ``
            use_dotenv: Call ``load_dotenv()`` before reading ``os.environ``
        """
        self._environ = environ
        self._use_dotenv = use_dotenv and environ is None
        self._credentials: Dict[str, ExchangeCredential] = {}
        self.load()

    def _env(self) -> Mapping[str, str]:
        if self._environ is not None:
            return self._environ
        if self._use_dotenv:
            load_dotenv()
        return os.environ

    def load(self) -> Dict[str, ExchangeCredential]:
        env = self._env()
        credentials = {}
        for name, spec in VENUE_ENV.items():
            credentials[name] = ExchangeCredential(
                name=name,
                api_key=env.get(spec.key_var, "").strip(),
                api_secret=env.get(spec.secret_var, "").strip(),
                passphrase=(env.get(spec.passphrase_var, "").strip() or None) if spec.passphrase_var else None,
                sandbox=_flag(env.get(spec.sandbox_var), False) if spec.sandbox_var else False,
                active=_flag(env.get(f"{spec.prefix}_ACTIVE"), True),
            )
            if not credentials[name].has_keys:
                logger.info("%s: no API keys configured, public-data-only mode", name)
        self._credentials = credentials
        return dict(credentials)

    def reload(self) -> Dict[str, ExchangeCredential]:
        logger.info("Reloading exchange credentials")
        return self.load()

    def get(self, name: str) -> Optional[ExchangeCredential]:
        return self._credentials.get(name.lower())

    def get_all(self) -> List[ExchangeCredential]:
        return list(self._credentials.values())

    def get_active(self) -> List[ExchangeCredential]:
        return [cred for cred in self._credentials.values() if cred.active]

    @staticmethod
    def validate(credential: ExchangeCredential) -> List[str]:
        """Return configuration problems for one credential (empty when fine)."""
        errors = []
        if credential.api_key and not credential.api_secret:
            errors.append(f"{credential.name}: API secret is missing")
        if credential.api_secret and not credential.api_key:
            errors.append(f"{credential.name}: API key is missing")
        if credential.has_keys and credential.name in PASSPHRASE_VENUES and not credential.passphrase:
            errors.append(f"{credential.name}: passphrase is required")
        return errors

    def validate_all(self) -> Dict[str, List[str]]:
        return {cred.name: self.validate(cred) for cred in self._credentials.values()}

    def get_summary(self) -> Dict[str, Dict[str, object]]:
        """Masked view for status pages. Secrets are never included."""
        return {
            cred.name: {
                "active": cred.active,
                "sandbox": cred.sandbox,
                "mode": "signed" if cred.has_keys else "public",
                "api_key": mask_value(cred.api_key) if cred.api_key else None,
                "has_passphrase": bool(cred.passphrase),
                "errors": self.validate(cred),
            }
            for cred in self._credentials.values()
        }

    @staticmethod
    def env_template() -> str:
        lines = ["# Exchange credentials (leave empty for public-data-only mode)"]
        for spec in VENUE_ENV.values():
            lines.append(f"{spec.key_var}=")
            lines.append(f"{spec.secret_var}=")
            if spec.passphrase_var:
                lines.append(f"{spec.passphrase_var}=")
            if spec.sandbox_var:
                lines.append(f"{spec.sandbox_var}=false")
            lines.append(f"{spec.prefix}_ACTIVE=true")
            lines.append("")
        return "\n".join(lines)
