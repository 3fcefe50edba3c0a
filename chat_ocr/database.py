"""
Supabase client management for server-side quota persistence.
"""

from typing import Optional
from supabase import create_client, Client
from chat_ocr.config import settings


_supabase_service: Optional[Client] = None


def get_supabase_service() -> Client:
    """
    Get Supabase client with service role key (admin privileges).

    Quota counters are shared across every user of the deployment, so they
    are written with the service role and never through a user session.

    Returns:
        Supabase client with service role privileges

    Raises:
        ValueError: If Supabase URL or service key is not configured
    """
    global _supabase_service

    if _supabase_service is None:
        if not settings.next_public_supabase_url or not settings.supabase_service_role_key:
            raise ValueError(
                "Supabase not configured. Set NEXT_PUBLIC_SUPABASE_URL and "
                "SUPABASE_SERVICE_ROLE_KEY or use QUOTA_STORE=memory"
            )
        _supabase_service = create_client(
            supabase_url=settings.next_public_supabase_url,
            supabase_key=settings.supabase_service_role_key
        )

    return _supabase_service
