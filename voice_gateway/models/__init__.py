from voice_gateway.models.agent import Agent
from voice_gateway.models.generation import Generation
from voice_gateway.models.usage_log import UsageLog

__all__ = [
    "Agent",
    "Generation",
    "UsageLog",
]
