"""
Configuration schema and loading for the Casper DEX client.

Config lives in YAML; the node address and state URef may be overridden
from the environment (or a .env file), matching how the web front end is
deployed.
"""

import os
import re
from pathlib import Path
from typing import Dict, Literal, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError, MalformedIdentifier
from .keys import U32_MAX, encode_identifier
from .pricing import BPS_DENOMINATOR, DEFAULT_FEE_BPS, DEFAULT_SLIPPAGE_BPS
from .types import Identifier

NODE_ADDRESS_ENV_VARS = ("NODE_ADDRESS", "VITE_NODE_ADDRESS")
STATE_UREF_ENV_VAR = "STATE_UREF"

_UREF_PATTERN = re.compile(r"uref-[0-9a-fA-F]{64}-[0-9]{3}")


class TokenConfig(BaseModel):
    """Token entry: the package hash keys pair lookups."""

    package_hash: str = Field(description="Token package hash (hash-...)")
    contract_hash: Optional[str] = Field(default=None, description="Token contract hash")
    decimals: int = Field(ge=0, le=77, default=18)

    @field_validator("package_hash", "contract_hash")
    @classmethod
    def validate_hash(cls, v):
        if v is None:
            return v
        try:
            encode_identifier(v)
        except MalformedIdentifier as e:
            raise ValueError(str(e)) from e
        return v

    @property
    def identifier(self) -> Identifier:
        return encode_identifier(self.package_hash)


class QuoterConfig(BaseModel):
    """Complete client configuration."""

    node_url: str = Field(min_length=1, description="Node address, with or without /rpc")
    chain_name: str = "casper"
    state_uref: str = Field(description="Seed URef of the factory state dictionary")
    tokens: Dict[str, TokenConfig] = Field(default_factory=dict)

    max_probe_index: int = Field(ge=0, le=U32_MAX, default=10)
    fee_bps: int = Field(ge=0, lt=BPS_DENOMINATOR, default=DEFAULT_FEE_BPS)
    slippage_bps: int = Field(ge=0, lt=BPS_DENOMINATOR, default=DEFAULT_SLIPPAGE_BPS)

    rpc_timeout_sec: float = Field(gt=0, le=300, default=10.0)
    timeout_policy: Literal["raise", "serve_cached"] = "raise"
    max_retries: int = Field(ge=0, le=10, default=0)
    probe_concurrency: int = Field(ge=1, le=64, default=1)
    cache_max_age_sec: Optional[float] = Field(gt=0, default=None)

    model_config = {
        "extra": "forbid",
    }

    @field_validator("state_uref")
    @classmethod
    def validate_state_uref(cls, v):
        if not _UREF_PATTERN.fullmatch(v):
            raise ValueError(f"state_uref must look like uref-<64 hex>-<access>: {v}")
        return v

    def resolve_token(self, ref: str) -> Identifier:
        """
        Turn a configured symbol or a raw identifier string into an Identifier.

        Raises:
            MalformedIdentifier: If ref is neither a known symbol nor a valid identifier
        """
        token = self.tokens.get(ref) or self.tokens.get(ref.upper())
        if token is not None:
            return token.identifier
        return encode_identifier(ref)

    def decimals_for(self, identifier: Identifier) -> int:
        """Decimals of a configured token; 18 for unknown tokens."""
        for token in self.tokens.values():
            if token.identifier == identifier:
                return token.decimals
        return 18


def _apply_env_overrides(config_dict: Dict, environ: Mapping[str, str]) -> Dict:
    merged = dict(config_dict)
    for var in NODE_ADDRESS_ENV_VARS:
        if environ.get(var):
            merged["node_url"] = environ[var]
            break
    if environ.get(STATE_UREF_ENV_VAR):
        merged["state_uref"] = environ[STATE_UREF_ENV_VAR]
    return merged


def validate_config(
    config_dict: Dict, environ: Optional[Mapping[str, str]] = None
) -> QuoterConfig:
    """
    Validate a configuration dictionary, applying environment overrides.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    merged = _apply_env_overrides(config_dict, environ if environ is not None else {})
    try:
        return QuoterConfig(**merged)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}", details={"errors": e.errors()}
        ) from e


def load_config(
    config_path: Union[str, Path], environ: Optional[Mapping[str, str]] = None
) -> QuoterConfig:
    """
    Load and validate config from a YAML file.

    Reads .env into the process environment first; pass environ explicitly
    to bypass the process environment entirely.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if environ is None:
        load_dotenv()
        environ = os.environ

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if config_dict is None:
        config_dict = {}
    if not isinstance(config_dict, dict):
        raise ConfigurationError("Config file must contain a YAML dictionary")

    return validate_config(config_dict, environ)
