from supabase import acreate_client, AsyncClient
from supabase.lib.client_options import AsyncClientOptions
from studysync.config import settings
from studysync.database.backend import SupabaseBackend


class SupabaseClient:
    _client: AsyncClient = None
    _backend: SupabaseBackend = None

    @classmethod
    async def get_client(cls) -> AsyncClient:
        if cls._client is None:
            cls._client = await acreate_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    async def create_isolated_client(cls) -> AsyncClient:
        """A fresh client for a single auth call; its session is never stored or refreshed"""
        return await acreate_client(
            settings.supabase_url,
            settings.supabase_key,
            options=AsyncClientOptions(persist_session=False, auto_refresh_token=False),
        )

    @classmethod
    async def get_backend(cls) -> SupabaseBackend:
        if cls._backend is None:
            cls._backend = SupabaseBackend(
                await cls.get_client(),
                client_factory=cls.create_isolated_client,
            )
        return cls._backend

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._backend = None


async def get_backend() -> SupabaseBackend:
    return await SupabaseClient.get_backend()
