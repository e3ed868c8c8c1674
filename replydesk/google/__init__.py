"""Google Business Profile integration."""

from replydesk.google.business_profile import BusinessProfileClient
from replydesk.google.credentials import CredentialStore, GoogleCredential

__all__ = ["BusinessProfileClient", "CredentialStore", "GoogleCredential"]
