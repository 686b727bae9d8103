from enum import Enum


# Enums
class UserRole(str, Enum):
    admin = "admin"
    agent = "agent"
    agency_admin = "agency_admin"
    client = "client"


class ListingStatus(str, Enum):
    pending = "pending"
    available = "available"
    under_offer = "under_offer"
    sold = "sold"
    rejected = "rejected"
    featured = "featured"


class PurchaseCategory(str, Enum):
    sale = "Sale"
    rent = "Rent"
    lease = "Lease"
    short_let = "Short Let"
    long_let = "Long Let"


# Roles allowed to create and manage listings
LISTING_MANAGER_ROLES = (UserRole.agent.value, UserRole.agency_admin.value, UserRole.admin.value)

# Statuses visible to guests, clients and agents browsing the public catalogue
PUBLIC_STATUSES = (
    ListingStatus.available.value,
    ListingStatus.under_offer.value,
    ListingStatus.sold.value,
    ListingStatus.featured.value,
)
