"""
Collaborator Validation Module
Validates signaling, notification and media configuration on startup
"""
import os
import logging
from typing import List, Optional, Tuple
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    provider: str
    setting: str
    is_valid: bool
    message: str


class CollaboratorValidator:
    """
    Validates collaborator configuration at startup.

    The Supabase settings are only required when the Supabase
    Realtime transport is selected; the in-memory hub needs nothing.
    """

    SUPABASE_ENV_VARS = [
        ("SUPABASE_URL", "Supabase realtime/database"),
        ("SUPABASE_SERVICE_KEY", "Supabase realtime/database"),
    ]

    OPTIONAL_ENV_VARS = [
        ("VAPID_PUBLIC_KEY", "Web push (send-push-notification edge function)"),
    ]

    KNOWN_TRANSPORTS = ("supabase", "memory")

    def __init__(self, strict: bool = False, transport: Optional[str] = None):
        """
        Initialize validator.

        Args:
            strict: If True, treat warnings as errors
            transport: Signaling transport name (defaults to SIGNALING_TRANSPORT)
        """
        self.strict = strict
        self.transport = transport or os.getenv("SIGNALING_TRANSPORT", "supabase")
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate all collaborator configurations.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        if self.transport not in self.KNOWN_TRANSPORTS:
            self._add_error(
                "signaling", "SIGNALING_TRANSPORT",
                f"Unknown signaling transport '{self.transport}' "
                f"(expected one of: {', '.join(self.KNOWN_TRANSPORTS)})"
            )
        elif self.transport == "memory":
            self._add_warning(
                "signaling", "SIGNALING_TRANSPORT",
                "In-memory signaling hub selected (single process only)"
            )
        else:
            self._add_success("signaling", "SIGNALING_TRANSPORT", "Supabase Realtime selected")
            for env_var, description in self.SUPABASE_ENV_VARS:
                if not os.getenv(env_var):
                    self._add_error("supabase", env_var, f"{description} requires {env_var} to be set")
                else:
                    self._add_success("supabase", env_var, f"{description} configured")

        for env_var, description in self.OPTIONAL_ENV_VARS:
            if not os.getenv(env_var):
                self._add_warning("notifications", env_var, f"{description} not configured (optional)")
            else:
                self._add_success("notifications", env_var, f"{description} configured")

        errors = [r for r in self.results if not r.is_valid]
        return len(errors) == 0, self.results

    def _add_success(self, provider: str, setting: str, message: str):
        self.results.append(ValidationResult(provider, setting, True, message))

    def _add_error(self, provider: str, setting: str, message: str):
        self.results.append(ValidationResult(provider, setting, False, message))

    def _add_warning(self, provider: str, setting: str, message: str):
        """Warnings become errors in strict mode."""
        self.results.append(ValidationResult(
            provider=provider,
            setting=setting,
            is_valid=not self.strict,
            message=f"WARNING: {message}"
        ))

    def log_results(self):
        """Log all validation results."""
        for r in self.results:
            if not r.is_valid:
                logger.error(f"  ✗ [{r.provider}] {r.message}")
            elif "WARNING" in r.message:
                logger.warning(f"  ⚠ [{r.provider}] {r.message}")
            else:
                logger.info(f"  ✓ [{r.provider}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        """Get summary of errors for exception message."""
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None

        lines = ["Collaborator configuration errors:"]
        for r in errors:
            lines.append(f"  - {r.setting}: {r.message}")
        return "\n".join(lines)


def validate_collaborators_on_startup(strict: bool = False, transport: Optional[str] = None) -> None:
    """
    Validate collaborator configuration at startup.

    Raises:
        RuntimeError: If required configuration is missing
    """
    validator = CollaboratorValidator(strict=strict, transport=transport)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("Collaborator configuration validated successfully")
