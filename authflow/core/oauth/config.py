"""
Provider config loader.

Loads provider configs from YAML with support for:
- built-in provider templates (GitHub, Google, GitLab, Discourse)
- env var expansion ${VAR_NAME}
- four provider kinds: sso, oauth, email, credentials

Credentials providers need an `authorize` callable and email providers usually a
`send_verification_request` hook; both are attached in code with `register()`.
"""

import os
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

import yaml
from loguru import logger

LOG_PREFIX = "[ProviderConfig]"


class ProviderKind(str, Enum):
    """Closed set of proof kinds. Adding a kind means adding a verifier for it."""

    SSO = "sso"
    OAUTH = "oauth"
    EMAIL = "email"
    CREDENTIALS = "credentials"


DEFAULT_USER_MAPPING: Dict[str, str] = {
    "id": "sub",
    "email": "email",
    "name": "name",
    "avatar": "picture",
}

# ==================== Built-in Provider Templates ====================

PROVIDER_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "github": {
        "kind": "oauth",
        "display_name": "GitHub",
        "authorize_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "userinfo_url": "https://api.github.com/user",
        "scope": "read:user user:email",
        "user_mapping": {
            "id": "id",
            "email": "email",
            "name": "name",
            "avatar": "avatar_url",
        },
        "token_endpoint_auth_method": "client_secret_post",
        "userinfo_headers": {"Accept": "application/vnd.github+json"},
    },
    "google": {
        "kind": "oauth",
        "display_name": "Google",
        "authorize_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "userinfo_url": "https://openidconnect.googleapis.com/v1/userinfo",
        "scope": "openid email profile",
        "user_mapping": dict(DEFAULT_USER_MAPPING),
    },
    "gitlab": {
        "kind": "oauth",
        "display_name": "GitLab",
        "authorize_url": "https://gitlab.com/oauth/authorize",
        "token_url": "https://gitlab.com/oauth/token",
        "userinfo_url": "https://gitlab.com/api/v4/user",
        "scope": "read_user",
        "user_mapping": {
            "id": "id",
            "email": "email",
            "name": "name",
            "avatar": "avatar_url",
        },
    },
    "discourse": {
        "kind": "sso",
        "display_name": "Discourse",
    },
}

CredentialsAuthorize = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]
SendVerificationRequest = Callable[..., Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ProviderConfig:
    """Single provider config. Read-only after construction."""

    id: str
    kind: ProviderKind
    display_name: str = ""
    icon: str = ""
    # SSO: shared HMAC secret and base URL of the SSO server
    secret: Optional[str] = None
    url: Optional[str] = None
    # OAuth
    client_id: str = ""
    client_secret: str = ""
    authorize_url: Optional[str] = None
    token_url: Optional[str] = None
    userinfo_url: Optional[str] = None
    scope: str = "openid email profile"
    user_mapping: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_USER_MAPPING))
    token_endpoint_auth_method: str = "client_secret_basic"
    userinfo_headers: Mapping[str, str] = field(default_factory=dict)
    check_state: bool = True
    # Email: link lifetime in seconds (None uses settings.email_token_max_age)
    max_age: Optional[int] = None
    send_verification_request: Optional[SendVerificationRequest] = None
    # Credentials
    authorize: Optional[CredentialsAuthorize] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def public_info(self) -> Dict[str, str]:
        """Provider info without secrets."""
        return {
            "id": self.id,
            "display_name": self.display_name or self.id.capitalize(),
            "icon": self.icon or self.id,
            "kind": self.kind.value,
        }


_KNOWN_FIELDS = {
    "enabled",
    "template",
    "kind",
    "display_name",
    "icon",
    "secret",
    "url",
    "client_id",
    "client_secret",
    "authorize_url",
    "token_url",
    "userinfo_url",
    "scope",
    "user_mapping",
    "token_endpoint_auth_method",
    "userinfo_headers",
    "check_state",
    "max_age",
}


class ProviderConfigLoader:
    """Provider config loader."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the config loader.

        Args:
            config_path: YAML file path; None means providers come only from `register()`
        """
        self.config_path = Path(config_path) if config_path else None
        self._providers: Dict[str, ProviderConfig] = {}
        self._registered: Dict[str, ProviderConfig] = {}
        self._loaded: bool = False

    def load(self, force_reload: bool = False) -> None:
        """
        Load the config file.

        Args:
            force_reload: Force reload
        """
        if self._loaded and not force_reload:
            return

        self._providers.clear()

        if self.config_path is None:
            self._loaded = True
            return

        if not self.config_path.exists():
            logger.warning(f"{LOG_PREFIX} Config file not found: {self.config_path}")
            self._loaded = True
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"{LOG_PREFIX} Failed to load config: {e}")
            self._loaded = True
            return

        if not raw:
            logger.warning(f"{LOG_PREFIX} Config file is empty: {self.config_path}")
            self._loaded = True
            return

        for name, config in (raw.get("providers") or {}).items():
            if not config.get("enabled", False):
                logger.debug(f"{LOG_PREFIX} Provider '{name}' is disabled, skipping")
                continue

            try:
                provider = self._parse_provider(name, config)
            except (ValueError, TypeError) as e:
                logger.error(f"{LOG_PREFIX} Failed to load provider '{name}': {e}")
                continue
            if provider:
                self._providers[name] = provider
                logger.info(f"{LOG_PREFIX} Loaded provider: {name} ({provider.kind.value})")

        self._loaded = True
        logger.info(f"{LOG_PREFIX} Loaded {len(self._providers)} providers")

    def _parse_provider(self, name: str, config: Dict[str, Any]) -> Optional[ProviderConfig]:
        """Parse a single provider config."""
        config = self._expand_env_vars(config)

        template_name = config.get("template")
        template = PROVIDER_TEMPLATES.get(template_name, {}) if template_name else {}

        # User values override the template
        merged = {**template, **config}

        kind = ProviderKind(merged.get("kind", "oauth"))

        if kind is ProviderKind.OAUTH:
            if not str(merged.get("client_id", "")).strip() or not str(merged.get("client_secret", "")).strip():
                logger.warning(f"{LOG_PREFIX} Provider '{name}' missing client_id or client_secret")
                return None
        elif kind is ProviderKind.SSO:
            if not str(merged.get("secret", "")).strip() or not str(merged.get("url", "")).strip():
                logger.warning(f"{LOG_PREFIX} Provider '{name}' missing secret or url")
                return None

        return ProviderConfig(
            id=name,
            kind=kind,
            display_name=merged.get("display_name", name.capitalize()),
            icon=merged.get("icon", name),
            secret=str(merged["secret"]).strip() if merged.get("secret") is not None else None,
            url=merged.get("url"),
            client_id=str(merged.get("client_id", "")).strip(),
            client_secret=str(merged.get("client_secret", "")).strip(),
            authorize_url=merged.get("authorize_url"),
            token_url=merged.get("token_url"),
            userinfo_url=merged.get("userinfo_url"),
            scope=merged.get("scope", "openid email profile"),
            user_mapping=merged.get("user_mapping", dict(DEFAULT_USER_MAPPING)),
            token_endpoint_auth_method=merged.get("token_endpoint_auth_method", "client_secret_basic"),
            userinfo_headers=merged.get("userinfo_headers", {}),
            check_state=bool(merged.get("check_state", True)),
            max_age=merged.get("max_age"),
            extra={k: v for k, v in merged.items() if k not in _KNOWN_FIELDS},
        )

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively replace ${VAR_NAME} with env var values."""
        if isinstance(obj, str):
            return re.sub(r"\$\{(\w+)\}", lambda m: os.environ.get(m.group(1), ""), obj)
        elif isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._expand_env_vars(i) for i in obj]
        return obj

    def register(self, provider: ProviderConfig, **overrides: Any) -> ProviderConfig:
        """
        Register a provider defined in code.

        Also used to attach callables to a YAML provider, e.g.
        `loader.register(loader.get_provider("credentials"), authorize=check_password)`.
        """
        if overrides:
            provider = replace(provider, **overrides)
        self._registered[provider.id] = provider
        logger.info(f"{LOG_PREFIX} Registered provider: {provider.id} ({provider.kind.value})")
        return provider

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        """Get provider config by id."""
        self.load()
        return self._registered.get(name) or self._providers.get(name)

    def list_providers(self) -> List[Dict[str, str]]:
        """List enabled providers (no secrets)."""
        return [provider.public_info() for provider in self.get_all_providers().values()]

    def get_all_providers(self) -> Dict[str, ProviderConfig]:
        """Get all provider configs; code-registered ones win over YAML."""
        self.load()
        return {**self._providers, **self._registered}
