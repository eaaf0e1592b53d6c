"""
FastAPI dependency injection module for the attribution engine API.

Endpoint handlers receive configuration through FastAPI's dependency system
instead of calling get_settings() directly, so tests can swap settings with
`app.dependency_overrides`.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- SettingsDep: Type alias for injecting Settings into endpoints

Usage Examples:
    @router.post("/forecast")
    async def forecast(request: ForecastRequest, settings: SettingsDep) -> ForecastResponse:
        forecast = generate_forecast(request.deals, scores, settings=settings)
        ...

    # In tests:
    app.dependency_overrides[get_settings_dependency] = lambda: Settings(_env_file=None)

See Also:
    - attribution_engine/core/config.py: Settings and ATTRIBUTION_* variables
    - attribution_engine/api/*.py: Endpoint handlers using these dependencies
"""

from typing import Annotated

from fastapi import Depends

from attribution_engine.core.config import Settings, get_settings


# =============================================================================
# Settings Dependency
# =============================================================================


def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() so that FastAPI's dependency
    override mechanism can replace it in tests.

    Returns:
        Settings: The cached, frozen Settings instance.

    Raises:
        pydantic.ValidationError: If an ATTRIBUTION_* variable holds an
            invalid value.
    """
    return get_settings()


# Type alias for injecting Settings into endpoint handlers
# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


__all__ = [
    "get_settings_dependency",
    "SettingsDep",
]
