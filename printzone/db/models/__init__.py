from .enums import *
from .user import User
from .template import Template
from .template_page import TemplatePage
from .customization_zone import CustomizationZone
from .zone_page_assignment import ZonePageAssignment
from .template_product import TemplateProduct

__all__ = [
    "User", "Template", "TemplatePage", "CustomizationZone", "ZonePageAssignment", "TemplateProduct",
    "ZoneType", "UserRole",
]
