import logging
import re
from functools import lru_cache

from supabase import Client, create_client

from lms_portal.core.config import settings
from lms_portal.core.errors import UpstreamFailure

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"^https?://")


@lru_cache(maxsize=1)
def create_supabase_client() -> Client:
    """
    Create the Supabase client used for every table and storage call.

    The service role key is used so row level security does not get in the
    way; authorization is enforced by the route guard instead.

    Raises:
        UpstreamFailure: If the URL or key is missing or malformed
    """
    if not settings.SUPABASE_URL:
        raise UpstreamFailure("Missing SUPABASE_URL. Check your .env and restart the server.")
    if not _URL_PATTERN.match(settings.SUPABASE_URL):
        raise UpstreamFailure("SUPABASE_URL must start with http(s):// e.g. https://<project>.supabase.co")
    if not settings.SUPABASE_SERVICE_KEY:
        raise UpstreamFailure("Missing SUPABASE_SERVICE_KEY. Add it to .env (server-only) and restart.")

    client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
    logger.info("Supabase client created for %s", settings.SUPABASE_URL)
    return client


def get_supabase() -> Client:
    """Get the Supabase client instance"""
    return create_supabase_client()
