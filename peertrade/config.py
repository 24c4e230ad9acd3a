"""
Settlement configuration.

Example YAML:

    instance: "0x1111111111111111111111111111111111111111"
    token: "0x2222222222222222222222222222222222222222"
    token_transfer_proxy: "0x3333333333333333333333333333333333333333"
    nftoken_transfer_proxy: "0x4444444444444444444444444444444444444444"
    journal: ".peertrade/transfers.jsonl"     # optional

All identities are fixed at construction. The instance identity is part of
every claim, so changing it invalidates every signature issued before.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from peertrade.core.exceptions import ConfigurationError, ValidationError
from peertrade.core.identity import NULL_IDENTITY, normalize_identity


@dataclass(frozen=True)
class SettlementConfig:
    """Identities of the settlement instance and its collaborators."""

    instance:               str
    token:                  str
    token_transfer_proxy:   str
    nftoken_transfer_proxy: str
    journal:                Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "SettlementConfig":
        """
        Build a config from a mapping.
        Raises ConfigurationError on missing keys or malformed identities.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Settlement config must be a mapping")

        identities = {}
        for key in ("instance", "token", "token_transfer_proxy", "nftoken_transfer_proxy"):
            if key not in data:
                raise ConfigurationError(f"Missing config key: {key}")
            try:
                value = normalize_identity(data[key], key)
            except ValidationError as exc:
                raise ConfigurationError(exc.message, exc.details) from exc
            if value == NULL_IDENTITY:
                raise ConfigurationError(f"{key} cannot be the null identity")
            identities[key] = value

        journal = data.get("journal")
        if journal is not None:
            journal = Path(journal)
            if base_dir is not None and not journal.is_absolute():
                journal = base_dir / journal

        return cls(journal=journal, **identities)

    @classmethod
    def from_yaml(cls, path: Path) -> "SettlementConfig":
        """Load from a YAML file. Relative journal paths resolve against its directory."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
        return cls.from_dict(data or {}, base_dir=path.parent)
