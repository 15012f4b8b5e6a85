"""
Models module for wire schemas and conversation state.

Key components:
- exotel_schemas: Pydantic models for the Exotel media stream events.
- openai_schemas: Pydantic models for the OpenAI Realtime client and server events.
- conversation: Conversation records and the registry of live conversations.

Usage examples:
```python
from voicebridge.models.conversation import ConversationManager

manager = ConversationManager()
conversation = await manager.create_conversation(call_sid="CA123", phone_number="+919800000000")
await manager.end_conversation("CA123", "completed")
```
"""

from voicebridge.models.conversation import Conversation, ConversationManager, detect_language
