from typing import Any, ClassVar, FrozenSet

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from debt_scheduler.core.schedule import parse_optional
from debt_scheduler.utils.exceptions import ConfigurationException, ScheduleParseException


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    LOG_LEVEL: str = "INFO"

    # Environment
    # Used for guardrails. Suggested values: dev|staging|prod.
    ENV: str = "dev"

    # Ledger / settlement endpoints
    # Forwarded verbatim to the settlement service on every call.
    LEDGER_RPC: str = Field(default="", validation_alias=AliasChoices("LEDGER_RPC", "DZ_LEDGER_RPC"))
    SOLANA_RPC: str = ""
    SETTLEMENT_API_URL: str = "http://localhost:8899"
    # Timeouts are owned by the settlement client; the scheduler imposes none of its own.
    SETTLEMENT_TIMEOUT_SECONDS: float = 120.0

    # Notifications
    SLACK_WEBHOOK_URL: str = Field(
        default="", validation_alias=AliasChoices("SLACK_WEBHOOK_URL", "VALIDATOR_SLACK_WEBHOOK")
    )
    SLACK_TIMEOUT_SECONDS: float = 10.0

    # Debt sweep
    GENESIS_EPOCH: int = 31
    PAY_DEBT_STEP_DELAY_MS: int = 10
    PAY_DEBT_ON_STARTUP: bool = True

    # Schedules (5-field cron, UTC). Empty string disables the trigger.
    PAY_DEBT_SCHEDULE: str = "0 */2 * * *"
    INITIALIZE_DISTRIBUTION_SCHEDULE: str = "*/2 * * * *"
    CALCULATE_DISTRIBUTION_SCHEDULE: str = "15 * * * *"
    COLLECT_ALL_DEBT_SCHEDULE: str = ""

    # Supervisor
    SCHEDULER_ENABLED: bool = True
    SUPERVISOR_TICK_SECONDS: float = 1.0
    SUPERVISOR_MAX_RESTARTS: int = 3
    SUPERVISOR_RESTART_WINDOW_SECONDS: float = 5.0
    SUPERVISOR_RESTART_DELAY_SECONDS: float = 1.0

    # HTTP surface (health + metrics)
    HTTP_PORT: int = Field(default=4001, validation_alias=AliasChoices("HTTP_PORT", "SCHEDULER_HTTP_PORT"))
    METRICS_ENABLED: bool = True

    # --- Guardrails ---
    _SAFE_ENVS: ClassVar[FrozenSet[str]] = frozenset({"dev", "development", "test", "testing"})
    _SCHEDULE_FIELDS: ClassVar[tuple[str, ...]] = (
        "PAY_DEBT_SCHEDULE",
        "INITIALIZE_DISTRIBUTION_SCHEDULE",
        "CALCULATE_DISTRIBUTION_SCHEDULE",
        "COLLECT_ALL_DEBT_SCHEDULE",
    )

    def model_post_init(self, __context: Any) -> None:
        # Runs on every Settings() instantiation (including module-level `settings = Settings()`).
        self._guardrail_genesis_epoch()
        self._guardrail_schedules()
        self._guardrail_rpc_endpoints()

    def _guardrail_genesis_epoch(self) -> None:
        if self.GENESIS_EPOCH < 0:
            raise ConfigurationException(
                f"GENESIS_EPOCH must be non-negative, got {self.GENESIS_EPOCH}"
            )

    def _guardrail_schedules(self) -> None:
        problems: list[str] = []
        for name in self._SCHEDULE_FIELDS:
            try:
                parse_optional(getattr(self, name))
            except ScheduleParseException as exc:
                problems.append(f"{name} ({exc.message})")
        if problems:
            raise ConfigurationException(
                "Invalid schedule expression(s): " + "; ".join(problems)
            )

    def _guardrail_rpc_endpoints(self) -> None:
        """Fail-fast when RPC endpoints are missing outside dev/test."""
        env = (self.ENV or "").strip().lower()
        if env in self._SAFE_ENVS:
            return

        missing = [name for name in ("LEDGER_RPC", "SOLANA_RPC") if not (getattr(self, name) or "").strip()]
        if missing:
            fields = ", ".join(missing)
            raise ConfigurationException(
                f"Refusing to start without RPC endpoints outside dev/test: {fields}. "
                f"Got ENV={self.ENV!r}. "
                "Set them via environment variables (LEDGER_RPC / SOLANA_RPC), "
                "or run with ENV=dev/test."
            )

    @property
    def pay_debt_step_delay_seconds(self) -> float:
        return max(0, self.PAY_DEBT_STEP_DELAY_MS) / 1000.0


settings = Settings()


def get_settings() -> Settings:
    """Return the global settings instance.

    Injected into request handlers with Depends() so tests can override it.
    """
    return settings
