from .config_parser import ConfigError, DnsQuorumConfig, load_config
from .logging_config import init_logging

__all__ = ["ConfigError", "DnsQuorumConfig", "init_logging", "load_config"]
