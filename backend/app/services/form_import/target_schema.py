"""
Target application schema that imported PDF fields are mapped onto.

Each entry describes one application attribute: its type, a description used
in model prompts, example values and, where relevant, the allowed values.
``DATA_SOURCE_PATHS`` gives the dot path under which the attribute is found
in the application record handed to the renderers.
"""
import copy
from typing import Any, Dict, Optional

APPLICATION_FIELDS_SCHEMA: Dict[str, Dict[str, Any]] = {
    'buyerName': {
        'type': 'string',
        'description': 'Buyer/borrower full name',
        'examples': ['John Doe', 'Jane Smith'],
    },
    'sellerName': {
        'type': 'string',
        'description': 'Seller full name',
        'examples': ['Bob Johnson', 'Mary Williams'],
    },
    'propertyAddress': {
        'type': 'string',
        'description': 'Property street address',
        'examples': ['123 Main St', '456 Oak Ave'],
    },
    'hoaProperty': {
        'type': 'string',
        'description': 'HOA community name',
        'examples': ['Sunset Hills', 'Oakwood Community'],
    },
    'closingDate': {
        'type': 'date',
        'description': 'Transaction closing date (MM/DD/YYYY)',
        'examples': ['01/15/2026', '02/28/2026'],
    },
    'salePrice': {
        'type': 'number',
        'description': 'Sale price in dollars',
        'examples': [350000, 500000],
    },
    'submitterName': {
        'type': 'string',
        'description': 'Form submitter name',
        'examples': ['Real Estate Agent', 'Settlement Agent'],
    },
    'submitterEmail': {
        'type': 'string',
        'description': 'Form submitter email',
        'examples': ['agent@example.com'],
    },
    'packageType': {
        'type': 'string',
        'description': 'Package type',
        'enum': ['standard', 'rush'],
        'examples': ['standard', 'rush'],
    },
}

DATA_SOURCE_PATHS: Dict[str, str] = {
    'buyerName': 'application.buyer_name',
    'sellerName': 'application.seller_name',
    'propertyAddress': 'application.property_address',
    'hoaProperty': 'application.hoa_property',
    'closingDate': 'application.closing_date',
    'salePrice': 'application.sale_price',
    'submitterName': 'application.submitter_name',
    'submitterEmail': 'application.submitter_email',
    'packageType': 'application.package_type',
}


def get_application_fields_schema() -> Dict[str, Dict[str, Any]]:
    """Return a copy of the default target schema."""
    return copy.deepcopy(APPLICATION_FIELDS_SCHEMA)


def data_source_for(schema_field: Optional[str]) -> Optional[str]:
    """Dot path of a schema attribute in the application record, if known."""
    if not schema_field:
        return None
    return DATA_SOURCE_PATHS.get(schema_field, schema_field)
