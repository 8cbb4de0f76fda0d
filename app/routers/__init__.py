# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - tasks.py: The user's task list
# - images.py: Image transformation and the image gallery
# - contact.py: Contact form submissions
# - download.py: Download relay for stored files
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import tasks
from . import images
from . import contact
from . import download

__all__ = [
    "health",
    "tasks",
    "images",
    "contact",
    "download",
]
