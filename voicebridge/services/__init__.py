"""Collaborators behind the bridge: hospital data access, call control and transfers."""

from voicebridge.services.data_store import HospitalDataStore, InMemoryHospitalStore
from voicebridge.services.exotel_client import ConfigurationError, ExotelAPIError, ExotelClient
from voicebridge.services.transfer import TransferService
