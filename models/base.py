from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class Gender(str, enum.Enum):
    """Person gender as reported by the lookup service"""
    MALE = "M"
    FEMALE = "F"
    OTHER = "O"


class RelationshipType(str, enum.Enum):
    """What the related person is to the person on an edge"""
    PARENT = "parent"
    CHILD = "child"
    SIBLING = "sibling"
    SPOUSE = "spouse"
    GRANDPARENT = "grandparent"
    GRANDCHILD = "grandchild"
    UNCLE_AUNT = "uncle_aunt"
    NEPHEW_NIECE = "nephew_niece"
    COUSIN = "cousin"


class RelationshipStatus(str, enum.Enum):
    """Relationship edge status"""
    ACTIVE = "active"
    ENDED = "ended"
    DECEASED = "deceased"


class ImportType(str, enum.Enum):
    """Kind of import run"""
    NATIONAL_ID = "national_id"
    MOTHER_NAME = "mother_name"
    FULL_TREE = "full_tree"


class ImportStatus(str, enum.Enum):
    """Import run status"""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


TERMINAL_IMPORT_STATUSES = (ImportStatus.SUCCESS, ImportStatus.PARTIAL, ImportStatus.FAILED)
