# src/costverify/core/config.py

import logging
import os
import re

from dotenv import load_dotenv

# Load environment variables from a .env file located in the project root
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "t", "y", "yes")


def _env_flag(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() in _TRUTHY


class Config:
    """
    Handles the harness configuration by loading values from environment variables.
    """

    DEFAULT_PROMETHEUS_URL = "https://demo-prometheus.infra.opencost.io"
    DEFAULT_OPENCOST_URL = "http://localhost:9003"
    DEFAULT_APPROX_THRESHOLD = 0.0001  # 0.01%

    def __init__(self):
        # -- Prometheus credentials ---
        self.PROMETHEUS_BEARER_TOKEN = self._get_secret("PROMETHEUS_BEARER_TOKEN")
        self.PROMETHEUS_USERNAME = self._get_secret("PROMETHEUS_USERNAME")
        self.PROMETHEUS_PASSWORD = self._get_secret("PROMETHEUS_PASSWORD")

    @staticmethod
    def _get_secret(key: str, default: str = None) -> str:
        """
        Retrieves a secret from a file (mounted secret volume) or falls back to environment variable.

        Raises:
            PermissionError: If the secret file exists but cannot be read due to permissions.
            IOError: If the secret file exists but cannot be read due to I/O errors.
        """
        secret_file = f"/etc/costverify/secrets/{key}"
        if os.path.exists(secret_file):
            try:
                with open(secret_file, "r") as f:
                    value = f.read().strip()
                    logger.debug("Loaded secret '%s' from %s", key, secret_file)
                    return value
            except PermissionError as e:
                raise PermissionError(
                    f"Secret file '{secret_file}' exists but cannot be read due to permission denied. "
                    f"Please check file permissions or run with appropriate privileges."
                ) from e
            except (IOError, OSError) as e:
                raise IOError(
                    f"Secret file '{secret_file}' exists but cannot be read: {e}. "
                    f"Please check the file integrity and system resources."
                ) from e
        return os.getenv(key, default)

    # Endpoints and thresholds are properties so they are resolved at access
    # time; tests change env vars after import.
    @property
    def PROMETHEUS_URL(self) -> str:
        return os.getenv("PROMETHEUS_URL") or self.DEFAULT_PROMETHEUS_URL

    @property
    def OPENCOST_URL(self) -> str:
        url = os.getenv("OPENCOST_URL") or self.DEFAULT_OPENCOST_URL
        return url.rstrip("/")

    @property
    def APPROX_THRESHOLD(self) -> float:
        raw = os.getenv("APPROX_THRESHOLD")
        if not raw:
            return self.DEFAULT_APPROX_THRESHOLD
        try:
            value = float(raw)
        except ValueError:
            value = 0.0
        if value <= 0.0:
            logger.error("invalid APPROX_THRESHOLD: %s", raw)
            return self.DEFAULT_APPROX_THRESHOLD
        return value

    @property
    def SHOW_DIFF(self) -> bool:
        raw = os.getenv("SHOW_DIFF")
        if not raw:
            return False
        if raw.lower() in _TRUTHY:
            return True
        if raw.lower() in ("false", "0", "f", "n", "no"):
            return False
        logger.error("invalid SHOW_DIFF: %s", raw)
        return False

    @property
    def PROMETHEUS_VERIFY_CERTS(self) -> bool:
        return _env_flag("PROMETHEUS_VERIFY_CERTS", "True")

    @property
    def OPENCOST_VERIFY_CERTS(self) -> bool:
        return _env_flag("OPENCOST_VERIFY_CERTS", "True")

    # --- Logging variables ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # --- HTTP variables ---
    DEFAULT_TIMEOUT_CONNECT = float(os.getenv("DEFAULT_TIMEOUT_CONNECT", "5"))
    DEFAULT_TIMEOUT_READ = float(os.getenv("DEFAULT_TIMEOUT_READ", "10"))
    USER_AGENT = os.getenv("USER_AGENT", "costverify")

    # --- Comparison variables ---
    # OpenCost samples pods at 1m resolution by default.
    QUERY_RESOLUTION = os.getenv("QUERY_RESOLUTION", "1m")
    COMPARISON_TOLERANCE = float(os.getenv("COMPARISON_TOLERANCE", "0.07"))
    PV_COMPARISON_TOLERANCE = float(os.getenv("PV_COMPARISON_TOLERANCE", "0.05"))
    NEGLIGIBLE_VALUE = float(os.getenv("NEGLIGIBLE_VALUE", "0.01"))
    # Namespaces that ran for less than this are too noisy to compare.
    SHORT_LIVED_RUNTIME_MINUTES = float(os.getenv("SHORT_LIVED_RUNTIME_MINUTES", "120"))

    def validate_instance(self):
        if not re.match(r"^(\d+)([smhdw])$", self.QUERY_RESOLUTION.lower()):
            raise ValueError("QUERY_RESOLUTION format is invalid. Use 's', 'm', 'h', 'd' or 'w'.")
        if self.COMPARISON_TOLERANCE <= 0:
            raise ValueError("COMPARISON_TOLERANCE must be positive.")
        if self.PV_COMPARISON_TOLERANCE <= 0:
            raise ValueError("PV_COMPARISON_TOLERANCE must be positive.")
        if self.NEGLIGIBLE_VALUE < 0:
            raise ValueError("NEGLIGIBLE_VALUE must not be negative.")
        if not self.PROMETHEUS_URL.startswith(("http://", "https://")):
            logger.warning("PROMETHEUS_URL '%s' has no http(s) scheme.", self.PROMETHEUS_URL)


# Instantiate the config to be imported by other modules
config = Config()
config.validate_instance()
