from .client import JudgeModel, LLMResult, Message, ProviderJudge, classify_sdk_error, parse_json_response
from .providers import PROVIDER_SPECS, ProviderSpec, get_provider_spec

__all__ = [
    "JudgeModel",
    "LLMResult",
    "Message",
    "ProviderJudge",
    "classify_sdk_error",
    "parse_json_response",
    "PROVIDER_SPECS",
    "ProviderSpec",
    "get_provider_spec",
]
