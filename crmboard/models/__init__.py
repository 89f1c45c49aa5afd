"""Database models — re-exports all models.

Import from here:  from crmboard.models import Lead, Stage, ...
Or from submodules: from crmboard.models.pipeline import Stage
"""

from .base import Base  # noqa: F401

# Pipelines, stages, leads
from .pipeline import Lead, LeadHistory, Pipeline, PipelinePermission, Stage  # noqa: F401

# Administration
from .admin import ApiToken, LeadCustomField, LeadCustomValue, Profile  # noqa: F401

# Messaging
from .messaging import (  # noqa: F401
    ChatConversation,
    ChatMessage,
    GreetingMessage,
    WhatsAppCampaign,
    WhatsAppCampaignLog,
)
