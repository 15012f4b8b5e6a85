import json
import unittest

from pydantic import ValidationError

from voicebridge.models.exotel_schemas import MediaEvent, MediaPayload, OutgoingMediaEvent, StartEvent
from voicebridge.models.openai_schemas import (
    ConversationItem,
    ConversationItemCreatedEvent,
    ConversationItemCreateEvent,
    SessionConfig,
    SessionUpdateEvent,
)


class TestExotelSchemas(unittest.TestCase):
    def test_start_event_nested(self):
        event = StartEvent.from_message(
            {
                "event": "start",
                "sequenceNumber": "1",
                "start": {"streamSid": "S1", "callSid": "C1", "customParameters": None},
            }
        )
        self.assertEqual(event.start.streamSid, "S1")
        self.assertEqual(event.start.callSid, "C1")
        self.assertEqual(event.start.customParameters, {})

    def test_start_event_flat_snake_case(self):
        event = StartEvent.from_message(
            {"event": "start", "stream_sid": "S2", "call_sid": "C2", "custom_parameters": {"a": 1}}
        )
        self.assertEqual(event.start.streamSid, "S2")
        self.assertEqual(event.start.callSid, "C2")
        self.assertEqual(event.start.customParameters, {"a": 1})

    def test_media_event_shapes(self):
        nested = MediaEvent.from_message({"event": "media", "media": {"payload": "AAAA", "chunk": "3"}})
        flat = MediaEvent.from_message({"event": "media", "payload": "BBBB"})
        self.assertEqual(nested.media.payload, "AAAA")
        self.assertEqual(nested.media.chunk, 3)
        self.assertEqual(flat.media.payload, "BBBB")

    def test_outgoing_media_requires_stream_sid(self):
        with self.assertRaises(ValidationError):
            OutgoingMediaEvent(streamSid="", media=MediaPayload(payload="AAAA"))


class TestOpenAISchemas(unittest.TestCase):
    def test_session_update_omits_unset_fields(self):
        event = SessionUpdateEvent(
            session=SessionConfig(
                instructions="Be brief.",
                voice="alloy",
                input_audio_format="g711_ulaw",
                output_audio_format="g711_ulaw",
            )
        )
        data = json.loads(event.model_dump_json(exclude_none=True))
        self.assertEqual(data["type"], "session.update")
        self.assertNotIn("turn_detection", data["session"])

    def test_function_output_item(self):
        event = ConversationItemCreateEvent(
            item=ConversationItem(type="function_call_output", call_id="call_1", output="{}")
        )
        data = json.loads(event.model_dump_json(exclude_none=True))
        self.assertEqual(
            data["item"], {"type": "function_call_output", "call_id": "call_1", "output": "{}"}
        )

    def test_user_transcript(self):
        event = ConversationItemCreatedEvent(
            type="conversation.item.created",
            item={"type": "message", "role": "user", "content": [{"transcript": "Hello"}]},
        )
        self.assertEqual(event.user_transcript, "Hello")

        assistant = ConversationItemCreatedEvent(
            type="conversation.item.created",
            item={"type": "message", "role": "assistant", "content": [{"transcript": "Hi"}]},
        )
        self.assertEqual(assistant.user_transcript, "")


if __name__ == "__main__":
    unittest.main()
