"""
Hospital data store contract and the in-process implementation.

Function handlers and conversation records depend only on ``HospitalDataStore``.
Every method is a coroutine and every failure is absorbed at this boundary:
reads degrade to an empty result and writes to ``None``, so callers never see
an exception from the store.
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from voicebridge.config import settings
from voicebridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def _contains(value: Optional[str], term: str) -> bool:
    """Case-insensitive substring match."""
    return bool(value) and term.lower() in value.lower()


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class HospitalDataStore(ABC):
    """Abstract base class for hospital reference data and conversation persistence."""

    # Conversation writes

    @abstractmethod
    async def create_conversation(
        self,
        call_sid: Optional[str] = None,
        session_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        conversation_type: str = "phone",
        language: str = "en",
    ) -> Optional[Dict[str, Any]]:
        """Create a conversation row. Returns the stored row (with ``id``) or None."""
        pass

    @abstractmethod
    async def end_conversation(
        self, conversation_id: str, status: str, duration_seconds: int = 0
    ) -> Optional[Dict[str, Any]]:
        """Mark a conversation ended."""
        pass

    @abstractmethod
    async def add_conversation_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        language: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Append a message to a conversation."""
        pass

    @abstractmethod
    async def create_conversation_summary(
        self,
        conversation_id: str,
        summary: str,
        key_topics: List[str],
        sentiment: str,
        action_items: List[str],
    ) -> Optional[Dict[str, Any]]:
        """Store the end-of-call summary."""
        pass

    # Reference data reads

    @abstractmethod
    async def get_hospital_locations(self) -> List[Dict[str, Any]]:
        """All active hospital locations ordered by name."""
        pass

    @abstractmethod
    async def get_hospital_location_by_branch(self, branch: str) -> Optional[Dict[str, Any]]:
        """First location whose branch name contains ``branch``."""
        pass

    @abstractmethod
    async def get_departments(self, location_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Departments, optionally restricted to one location."""
        pass

    @abstractmethod
    async def get_hospital_info(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """General information entries, optionally for one category."""
        pass

    @abstractmethod
    async def get_contact_details(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Contact directory entries ordered by priority, highest first."""
        pass

    @abstractmethod
    async def get_doctors(
        self,
        specialization: Optional[str] = None,
        doctor_name: Optional[str] = None,
        department_id: Optional[str] = None,
        location_id: Optional[str] = None,
        is_available: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Doctors matching every supplied filter."""
        pass

    @abstractmethod
    async def get_doctor_availability(
        self, doctor_id: str, day_of_week: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Weekly schedule slots for a doctor."""
        pass

    @abstractmethod
    async def search_hospital_data(self, term: str) -> Dict[str, List[Dict[str, Any]]]:
        """Search doctors, departments and information entries at once."""
        pass


class InMemoryHospitalStore(HospitalDataStore):
    """
    Hospital data store backed by a YAML seed file.

    Reference data is loaded lazily on first read. Conversation rows, messages
    and summaries live in memory for the life of the process.
    """

    def __init__(self, data_file: Optional[str] = None):
        self.data_file = Path(data_file or settings.HOSPITAL_DATA_FILE)
        self._data: Optional[Dict[str, Any]] = None
        self.conversations: Dict[str, Dict[str, Any]] = {}
        self.messages: Dict[str, List[Dict[str, Any]]] = {}
        self.summaries: Dict[str, Dict[str, Any]] = {}

    def _load(self) -> Dict[str, Any]:
        """Load reference data, degrading to an empty data set on any error."""
        if self._data is None:
            try:
                with open(self.data_file, "r", encoding="utf-8") as f:
                    self._data = yaml.safe_load(f) or {}
                logger.info(f"Loaded hospital data from {self.data_file}")
            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Could not load hospital data from {self.data_file}: {e}")
                self._data = {}
        return self._data

    def _table(self, name: str) -> List[Dict[str, Any]]:
        return [row for row in self._load().get(name) or [] if row.get("is_active", True)]

    def _by_id(self, name: str) -> Dict[str, Dict[str, Any]]:
        return {row["id"]: row for row in self._table(name) if "id" in row}

    def _with_relations(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Copy a row, resolving department and location names it refers to."""
        result = copy.deepcopy(row)
        department = self._by_id("departments").get(row.get("department_id"))
        if department:
            result["department_name"] = department["name"]
        location = self._by_id("locations").get(row.get("location_id"))
        if location:
            result["branch"] = location["branch"]
        return result

    async def create_conversation(
        self,
        call_sid=None,
        session_id=None,
        phone_number=None,
        conversation_type="phone",
        language="en",
    ):
        row = {
            "id": str(uuid.uuid4()),
            "call_sid": call_sid,
            "session_id": session_id,
            "phone_number": phone_number,
            "conversation_type": conversation_type,
            "language_detected": language,
            "started_at": _utcnow(),
            "status": "active",
        }
        self.conversations[row["id"]] = row
        self.messages[row["id"]] = []
        logger.info(f"Conversation created: {row['id']} ({conversation_type})")
        return dict(row)

    async def end_conversation(self, conversation_id, status, duration_seconds=0):
        row = self.conversations.get(conversation_id)
        if row is None:
            logger.error(f"Cannot end unknown conversation row: {conversation_id}")
            return None
        row.update(
            {
                "ended_at": _utcnow(),
                "duration_seconds": duration_seconds,
                "status": status,
            }
        )
        logger.info(f"Conversation ended: {conversation_id} ({duration_seconds}s, {status})")
        return dict(row)

    async def add_conversation_message(
        self, conversation_id, role, content, language=None, metadata=None
    ):
        if conversation_id not in self.conversations:
            logger.error(f"Cannot add message to unknown conversation row: {conversation_id}")
            return None
        message = {
            "id": str(uuid.uuid4()),
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "language": language,
            "metadata": metadata or {},
            "timestamp": _utcnow(),
        }
        self.messages[conversation_id].append(message)
        return dict(message)

    async def create_conversation_summary(
        self, conversation_id, summary, key_topics, sentiment, action_items
    ):
        row = {
            "id": str(uuid.uuid4()),
            "conversation_id": conversation_id,
            "summary": summary,
            "key_topics": list(key_topics),
            "sentiment": sentiment,
            "action_items": list(action_items),
        }
        self.summaries[conversation_id] = row
        logger.info(f"Conversation summary created for {conversation_id}")
        return dict(row)

    async def get_hospital_locations(self):
        return sorted(
            (copy.deepcopy(row) for row in self._table("locations")),
            key=lambda row: row.get("name", ""),
        )

    async def get_hospital_location_by_branch(self, branch):
        for row in self._table("locations"):
            if _contains(row.get("branch"), branch):
                return copy.deepcopy(row)
        return None

    async def get_departments(self, location_id=None):
        rows = [
            copy.deepcopy(row)
            for row in self._table("departments")
            if location_id is None or row.get("location_id") == location_id
        ]
        return sorted(rows, key=lambda row: row.get("name", ""))

    async def get_hospital_info(self, category=None):
        return [
            copy.deepcopy(row)
            for row in self._table("hospital_info")
            if category is None or row.get("category") == category
        ]

    async def get_contact_details(self, category=None):
        rows = [
            self._with_relations(row)
            for row in self._table("contacts")
            if category is None or _contains(row.get("category"), category)
        ]
        return sorted(rows, key=lambda row: row.get("priority", 0), reverse=True)

    async def get_doctors(
        self,
        specialization=None,
        doctor_name=None,
        department_id=None,
        location_id=None,
        is_available=None,
    ):
        rows = []
        for row in self._table("doctors"):
            if specialization and not _contains(row.get("specialization"), specialization):
                continue
            if doctor_name and not _contains(row.get("name"), doctor_name):
                continue
            if department_id and row.get("department_id") != department_id:
                continue
            if location_id and row.get("location_id") != location_id:
                continue
            if is_available is not None and row.get("is_available", True) != is_available:
                continue
            rows.append(self._with_relations(row))
        return sorted(rows, key=lambda row: row.get("name", ""))

    async def get_doctor_availability(self, doctor_id, day_of_week=None):
        doctor = self._by_id("doctors").get(doctor_id)
        if doctor is None:
            return []
        slots = []
        for slot in self._load().get("availability_template") or []:
            if day_of_week is not None and slot.get("day_of_week") != day_of_week:
                continue
            slot = dict(slot, doctor_id=doctor_id, location_id=doctor.get("location_id"))
            slots.append(self._with_relations(slot))
        return sorted(slots, key=lambda s: (s["day_of_week"], s.get("start_time", "")))

    async def search_hospital_data(self, term):
        departments = [
            copy.deepcopy(row)
            for row in self._table("departments")
            if _contains(row.get("name"), term)
        ]
        info = [
            copy.deepcopy(row)
            for row in self._table("hospital_info")
            if _contains(row.get("title"), term) or _contains(row.get("content"), term)
        ]
        return {
            "doctors": await self.get_doctors(specialization=term),
            "departments": departments,
            "info": info,
        }
