"""
Conversation state management for phone and web voice sessions.

This module provides the Conversation record, which holds one call's message log,
side-effect logs and detected language, and the ConversationManager registry,
which maps call and session identifiers to live records (and the bridge serving
each call), ends them exactly once, and sweeps stale ones on a timer.

The registry is the only state shared between calls. Everything runs on one
event loop, so mutations between suspension points need no lock. It is
in-memory and therefore single-instance only.
"""

import asyncio
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from voicebridge.config import settings
from voicebridge.config.constants import (
    CONVERSATION_TYPE_PHONE,
    LOGGER_NAME,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_SERVER_SHUTDOWN,
    STATUS_TIMEOUT,
)
from voicebridge.config.prompts import LANGUAGE_DETECTION_KEYWORDS
from voicebridge.models.openai_schemas import MessageRole
from voicebridge.services.data_store import HospitalDataStore

logger = logging.getLogger(LOGGER_NAME)

DEVANAGARI = re.compile(r"[\u0900-\u097F]")
WORD = re.compile(r"[a-z]+")


def detect_language(text: str) -> Optional[str]:
    """
    Guess the language of a caller utterance.

    Returns ``"hi"`` or ``"mr"`` when a keyword or Devanagari script gives it
    away, otherwise None (no evidence against the current language).
    """
    words = set(WORD.findall(text.lower()))
    for language, keywords in LANGUAGE_DETECTION_KEYWORDS.items():
        if words.intersection(keywords):
            return language
    if DEVANAGARI.search(text):
        return "hi"
    return None


class Conversation:
    """
    One call or web session: identity, message log and side-effect logs.

    The record never references the bridge serving it. ``id`` is the data store's
    row identifier; it is set at most once and never cleared.
    """

    def __init__(
        self,
        call_sid: Optional[str] = None,
        session_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        conversation_type: str = CONVERSATION_TYPE_PHONE,
        data_store: Optional[HospitalDataStore] = None,
    ):
        self.id: Optional[str] = None
        self.call_sid = call_sid
        self.session_id = session_id or str(uuid.uuid4())
        self.phone_number = phone_number
        self.conversation_type = conversation_type
        self.language = "en"
        self.messages: List[Dict[str, Any]] = []
        self.function_calls: List[Dict[str, Any]] = []
        self.transfers: List[Dict[str, Any]] = []
        self.emergencies: List[Dict[str, Any]] = []
        self.start_time = datetime.now(timezone.utc)
        self.ended = False
        self.status: Optional[str] = None
        self.data_store = data_store
        # Canonical registry key; identifiers learned later become aliases
        self.key = call_sid or self.session_id

    def set_persisted_id(self, persisted_id: Optional[str]) -> None:
        if not persisted_id or self.id is not None:
            return
        self.id = persisted_id

    async def initialize(self) -> Optional[str]:
        """Create the data store row for this conversation."""
        if self.data_store is None:
            return None
        row = await self.data_store.create_conversation(
            call_sid=self.call_sid,
            session_id=self.session_id,
            phone_number=self.phone_number,
            conversation_type=self.conversation_type,
            language=self.language,
        )
        if row:
            self.set_persisted_id(row.get("id"))
            logger.info(f"Conversation initialized: {self.id} ({self.conversation_type})")
        return self.id

    def duration_seconds(self) -> int:
        return int((datetime.now(timezone.utc) - self.start_time).total_seconds())

    async def add_message(
        self, role: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Append a message in arrival order and persist it when the row exists.

        User messages also update the detected language.
        """
        message = {
            "role": role,
            "content": content,
            "timestamp": datetime.now(timezone.utc),
            "metadata": metadata or {},
        }
        self.messages.append(message)

        if role == MessageRole.USER.value:
            detected = detect_language(content)
            if detected and detected != self.language:
                self.update_language(detected)

        if self.id and self.data_store is not None:
            await self.data_store.add_conversation_message(
                conversation_id=self.id,
                role=role,
                content=content,
                language=self.language,
                metadata=metadata,
            )
        return message

    def update_language(self, language: str) -> None:
        self.language = language
        logger.info(f"Language detected: {language}")

    def log_function_call(self, name: str, args: Dict[str, Any], result: Dict[str, Any]) -> None:
        self.function_calls.append(
            {
                "function": name,
                "arguments": args,
                "result": result,
                "timestamp": datetime.now(timezone.utc),
            }
        )
        logger.info(f"Function called: {name} - Success: {result.get('success')}")

    def log_transfer(self, transfer_type: str, destination: Optional[str], reason: Optional[str]) -> None:
        self.transfers.append(
            {
                "type": transfer_type,
                "destination": destination,
                "reason": reason,
                "timestamp": datetime.now(timezone.utc),
            }
        )
        logger.info(f"Transfer logged: {transfer_type} to {destination}")

    def log_emergency(self, emergency_type: Optional[str], details: Dict[str, Any]) -> None:
        self.emergencies.append(
            {
                "type": emergency_type,
                "details": details,
                "timestamp": datetime.now(timezone.utc),
            }
        )
        logger.warning(f"Emergency logged: {emergency_type}")

    async def end(self, status: str = STATUS_COMPLETED) -> Optional[Dict[str, Any]]:
        """
        End the conversation. Only the first call has any effect.

        Returns:
            ``{"duration_seconds", "status"}`` on the first call, None afterwards
        """
        if self.ended:
            return None
        self.ended = True
        self.status = status
        duration = self.duration_seconds()

        if self.id and self.data_store is not None:
            await self.data_store.end_conversation(self.id, status, duration)
            if self.messages:
                await self.generate_summary()

        logger.info(f"Conversation ended: {self.id} ({duration}s, {status})")
        return {"duration_seconds": duration, "status": status}

    def build_summary(self) -> Dict[str, Any]:
        user_count = sum(1 for m in self.messages if m["role"] == MessageRole.USER.value)
        assistant_count = sum(1 for m in self.messages if m["role"] == MessageRole.ASSISTANT.value)
        summary = (
            f"Conversation with {self.phone_number or 'unknown caller'}. "
            f"{user_count} user messages, {assistant_count} assistant responses. "
            f"{len(self.function_calls)} function calls, "
            f"{len(self.transfers)} transfers, "
            f"{len(self.emergencies)} emergencies."
        )
        key_topics = list(dict.fromkeys(call["function"] for call in self.function_calls))
        if self.emergencies:
            sentiment = "urgent"
        elif len(self.transfers) > 2:
            sentiment = "frustrated"
        else:
            sentiment = "neutral"
        action_items = [
            f"Transfer to {t['destination']}: {t['reason']}" for t in self.transfers
        ]
        return {
            "summary": summary,
            "key_topics": key_topics,
            "sentiment": sentiment,
            "action_items": action_items,
        }

    async def generate_summary(self) -> None:
        summary = self.build_summary()
        await self.data_store.create_conversation_summary(conversation_id=self.id, **summary)
        logger.info(f"Summary generated for conversation: {self.id}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "call_sid": self.call_sid,
            "phone_number": self.phone_number,
            "conversation_type": self.conversation_type,
            "duration_seconds": self.duration_seconds(),
            "message_count": len(self.messages),
            "function_call_count": len(self.function_calls),
            "transfer_count": len(self.transfers),
            "emergency_count": len(self.emergencies),
            "language": self.language,
        }


class ConversationManager:
    """
    Registry of live conversations.

    Each record is stored under one canonical key: the call identifier when it
    is known at creation, otherwise the session identifier. Identifiers learned
    later (a call identifier from the media stream ``start`` event) are added as
    aliases of the canonical key so lookups by either succeed.
    """

    def __init__(
        self,
        data_store: Optional[HospitalDataStore] = None,
        max_age_minutes: Optional[int] = None,
        sweep_interval_minutes: Optional[int] = None,
    ):
        self.data_store = data_store
        self.max_age_minutes = (
            settings.CONVERSATION_MAX_AGE_MINUTES if max_age_minutes is None else max_age_minutes
        )
        self.sweep_interval_minutes = (
            settings.CONVERSATION_SWEEP_INTERVAL_MINUTES
            if sweep_interval_minutes is None
            else sweep_interval_minutes
        )
        self.active_conversations: Dict[str, Conversation] = {}
        self.aliases: Dict[str, str] = {}
        self.bridges: Dict[str, Any] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self.active_conversations)

    def _resolve(self, identifier: Optional[str]) -> Optional[str]:
        if not identifier:
            return None
        if identifier in self.active_conversations:
            return identifier
        return self.aliases.get(identifier)

    async def create_conversation(
        self,
        call_sid: Optional[str] = None,
        session_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        conversation_type: str = CONVERSATION_TYPE_PHONE,
    ) -> Conversation:
        """
        Create, register and persist a new conversation.

        A record already registered under the same key is ended as ``failed``
        and replaced.

        Returns:
            The new record; registered before the data store write starts
        """
        conversation = Conversation(
            call_sid=call_sid,
            session_id=session_id,
            phone_number=phone_number,
            conversation_type=conversation_type,
            data_store=self.data_store,
        )
        key = conversation.key
        previous = None
        if self._resolve(key):
            logger.warning(f"Replacing conversation already registered under {key}")
            previous = self._drop(self._resolve(key))
        self.active_conversations[key] = conversation
        logger.info(f"Conversation created and registered: {key}")

        if previous is not None:
            await previous.end(STATUS_FAILED)
        await conversation.initialize()
        return conversation

    def get_conversation(self, identifier: Optional[str]) -> Optional[Conversation]:
        """Look up a live conversation by canonical key or alias. None is a normal outcome."""
        key = self._resolve(identifier)
        return self.active_conversations.get(key) if key else None

    def add_alias(self, identifier: str, alias: str) -> bool:
        """
        Make ``alias`` resolve to the conversation registered under ``identifier``.

        Returns:
            False if the conversation is unknown or the alias already names another record
        """
        key = self._resolve(identifier)
        if key is None or not alias:
            return False
        existing = self._resolve(alias)
        if existing is not None:
            return existing == key
        self.aliases[alias] = key
        logger.info(f"Registered alias {alias} for conversation {key}")
        return True

    def attach_bridge(self, identifier: str, bridge: Any) -> None:
        key = self._resolve(identifier)
        if key is not None:
            self.bridges[key] = bridge

    def get_bridge(self, identifier: str) -> Any:
        key = self._resolve(identifier)
        return self.bridges.get(key) if key else None

    def _drop(self, key: str) -> Optional[Conversation]:
        conversation = self.active_conversations.pop(key, None)
        self.bridges.pop(key, None)
        for alias in [a for a, k in self.aliases.items() if k == key]:
            del self.aliases[alias]
        return conversation

    async def end_conversation(
        self, identifier: Optional[str], status: str = STATUS_COMPLETED
    ) -> Optional[Dict[str, Any]]:
        """
        End a conversation and remove it from the registry.

        Unknown identifiers are expected (webhooks may arrive after cleanup) and
        only log a warning. The entry is removed before any await, so concurrent
        calls for the same conversation end it once.

        Returns:
            ``{"duration_seconds", "status"}`` or None if not found
        """
        key = self._resolve(identifier)
        if key is None:
            logger.warning(f"Conversation not found: {identifier}")
            return None

        bridge = self.bridges.get(key)
        conversation = self._drop(key)
        result = await conversation.end(status)
        logger.info(f"Conversation cleaned up: {key}")

        if bridge is not None and not bridge.closed:
            await bridge.cleanup(status)
        return result

    def get_active_conversations(self) -> List[Dict[str, Any]]:
        return [conv.get_stats() for conv in self.active_conversations.values()]

    async def sweep_stale(self, max_age_minutes: Optional[int] = None) -> int:
        """
        End every conversation older than the age threshold with status ``timeout``.

        Returns:
            Number of conversations swept
        """
        max_age = self.max_age_minutes if max_age_minutes is None else max_age_minutes
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=max_age)
        stale = [
            key for key, conv in self.active_conversations.items() if conv.start_time < cutoff
        ]
        for key in stale:
            await self.end_conversation(key, STATUS_TIMEOUT)
        if stale:
            logger.info(f"Cleaned up {len(stale)} stale conversations")
        return len(stale)

    async def _sweep_loop(self) -> None:
        interval = self.sweep_interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_stale()
            except Exception as e:
                logger.error(f"Error sweeping stale conversations: {e}", exc_info=True)

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(
                f"Stale conversation sweep every {self.sweep_interval_minutes} minutes "
                f"(max age {self.max_age_minutes} minutes)"
            )

    async def stop_sweeper(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    async def shutdown(self, status: str = STATUS_SERVER_SHUTDOWN) -> int:
        """End every live conversation. Returns how many were ended."""
        keys = list(self.active_conversations)
        for key in keys:
            await self.end_conversation(key, status)
        return len(keys)
