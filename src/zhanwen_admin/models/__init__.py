"""Data models for the Zhanwen admin backend."""

from .admin_user import AdminUser
from .model_config import ModelConfig
from .prompt_template import PromptTemplate
from .provider import Provider
from .usage_log import UsageLog

__all__ = ["AdminUser", "ModelConfig", "PromptTemplate", "Provider", "UsageLog"]
