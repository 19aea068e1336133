import logging
import os
from configparser import RawConfigParser
from dataclasses import dataclass
from typing import Dict, Optional

base_logger = logging.getLogger("cmdbauth.config")

# Possible paths for base configuration files, first found wins
CONFIG_FILES = {
    "auth": ["/etc/cmdbauth/auth.conf", "/usr/etc/cmdbauth/auth.conf"],
    "logging": ["/etc/cmdbauth/logging.conf", "/usr/etc/cmdbauth/logging.conf"],
}

# Directories with configuration snippets overriding the base file
CONFIG_SNIPPETS_DIRS = {
    "auth": ["/usr/etc/cmdbauth/auth.conf.d", "/etc/cmdbauth/auth.conf.d"],
    "logging": ["/usr/etc/cmdbauth/logging.conf.d", "/etc/cmdbauth/logging.conf.d"],
}

# A file set through CMDBAUTH_<COMPONENT>_CONFIG replaces all other files
CONFIG_ENV = {component: os.environ.get(f"CMDBAUTH_{component.upper()}_CONFIG", "") for component in CONFIG_FILES}

# Single instance
_config: Optional[Dict[str, RawConfigParser]] = None


def _read_snippets(component: str, parser: RawConfigParser) -> None:
    for d in (x for x in CONFIG_SNIPPETS_DIRS.get(component, []) if os.path.isdir(x)):
        snippets = sorted(os.path.join(d, f) for f in os.listdir(d) if os.path.isfile(os.path.join(d, f)))
        applied = parser.read(snippets)
        for snippet in snippets:
            if snippet not in applied:
                base_logger.error("Configuration snippet %s for %s could not be parsed", snippet, component)
        if applied:
            base_logger.info("Applied configuration snippets from %s", d)


def get_config(component: str) -> RawConfigParser:
    """Find the configuration of a component and apply its overrides.

    * A file set through the CMDBAUTH_<COMPONENT>_CONFIG environment variable is
    used alone, ignoring every other file.
    * Otherwise the first existing file from CONFIG_FILES is the base
    configuration, and the snippets found in CONFIG_SNIPPETS_DIRS are applied
    on top of it in lexical order.

    A missing configuration is not an error: every option has a fallback.
    """
    global _config

    if not _config:
        _config = {}

    if not component:
        raise Exception("No component provided to get_config")

    if component in _config:
        return _config[component]

    if not isinstance(CONFIG_FILES, dict) or component not in CONFIG_FILES:
        raise Exception(f"Invalid component '{component}'")

    parser = RawConfigParser()
    _config[component] = parser

    env_file = CONFIG_ENV.get(component, "") if isinstance(CONFIG_ENV, dict) else ""
    if env_file:
        if os.path.isfile(env_file):
            base_logger.info("Reading configuration from %s", parser.read(env_file))
            return parser
        base_logger.info(
            "Configuration file %s for %s set through environment variable not found, falling back to installed configuration",
            env_file,
            component,
        )

    for path in CONFIG_FILES[component]:
        if not os.path.exists(path):
            continue
        read = parser.read(path)
        if not read:
            base_logger.error("Configuration file %s for %s exists but could not be parsed", path, component)
            continue
        base_logger.info("Reading configuration from %s", read)
        _read_snippets(component, parser)
        break
    else:
        base_logger.debug("No configuration file found for %s in %s, using defaults", component, CONFIG_FILES[component])

    return parser


def _get_env(component: str, option: str, section: Optional[str]) -> Optional[str]:
    opt_section = f"_{section.upper()}" if section else ""
    env_name = f"CMDBAUTH_{component.upper()}{opt_section}_{option.upper()}"
    env_value = os.environ.get(env_name, None)
    if env_value is not None:
        base_logger.info(
            'option "%s" for component %s was overridden by environment variable %s', option, component, env_name
        )
    return env_value


def getboolean(component: str, option: str, section: Optional[str] = None, fallback: bool = False) -> bool:
    env_value = _get_env(component, option, section)
    if env_value is not None:
        value = env_value.lower().strip('" ')
        if value not in RawConfigParser.BOOLEAN_STATES:
            base_logger.warning(
                'Ignoring invalid boolean %s for option "%s" of component %s', env_value, option, component
            )
            return fallback
        return RawConfigParser.BOOLEAN_STATES[value]

    return get_config(component).getboolean(section or component, option, fallback=fallback)


@dataclass(frozen=True)
class AuthConfig:
    """Feature switches of the authorization layer.

    Attributes:
        register_resources_enabled: when False resources are neither registered,
            deregistered nor updated, and attribute checks fall back to the
            owning model
        skip_read_authorization: when True find/findMany checks are not sent to
            the policy engine
    """

    register_resources_enabled: bool = True
    skip_read_authorization: bool = False


def load_auth_config(component: str = "auth") -> AuthConfig:
    """Snapshot the feature switches of ``component``; read once at startup."""
    return AuthConfig(
        register_resources_enabled=getboolean(component, "register_resources", fallback=True),
        skip_read_authorization=getboolean(component, "skip_read_authorization", fallback=False),
    )
