"""
School account provisioning.

Turns untrusted SchILD XML / CSV exports into UserRecords and reconciles them
against the identity directory through an authenticated admin session.

Modules:
    models     - UserRecord, FieldMapping, SyncResult and friends
    ids        - Institutional ID normalization, synthesis and policy
    ingest     - XML and CSV parsers
    profile    - Administrator profile resolution and role gate
    directory  - Keycloak admin REST client
    sync       - Identity sync engine
"""

from provisioning.directory import KeycloakDirectory
from provisioning.ids import (
    InstitutionalIdPolicy,
    generate_user_id_from_email,
    normalize_institutional_id,
)
from provisioning.models import (
    CsvParseResult,
    DirectoryUser,
    FieldMapping,
    ParseResult,
    SyncableAttribute,
    SyncResult,
    UserRecord,
    UserType,
)
from provisioning.profile import ProfileShape, ProviderProfile, load_profile, resolve_profile
from provisioning.sync import IdentitySyncEngine, build_user_payload

__version__ = "0.1.0"

__all__ = [
    "CsvParseResult",
    "DirectoryUser",
    "FieldMapping",
    "IdentitySyncEngine",
    "InstitutionalIdPolicy",
    "KeycloakDirectory",
    "ParseResult",
    "ProfileShape",
    "ProviderProfile",
    "SyncResult",
    "SyncableAttribute",
    "UserRecord",
    "UserType",
    "build_user_payload",
    "generate_user_id_from_email",
    "load_profile",
    "normalize_institutional_id",
    "resolve_profile",
]
