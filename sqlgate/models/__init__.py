from sqlgate.models.approval import Approval
from sqlgate.models.catalog import CatalogTable
from sqlgate.models.credential import Credential
from sqlgate.models.query import QueryRecord
from sqlgate.models.target import Target
from sqlgate.models.template import QueryTemplate
from sqlgate.models.user import Team, User

__all__ = [
    "Approval",
    "CatalogTable",
    "Credential",
    "QueryRecord",
    "QueryTemplate",
    "Target",
    "Team",
    "User",
]
