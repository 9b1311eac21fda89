from sgms.core.services.brevo import BrevoService
from sgms.core.services.cloudinary import CloudinaryService
from sgms.core.services.redis_service import RedisService
from sgms.core.services.template import Renderer

__all__ = [
    "BrevoService",
    "CloudinaryService",
    "RedisService",
    "Renderer",
]
