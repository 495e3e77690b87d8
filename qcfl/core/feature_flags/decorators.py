"""Feature Flag Decorators."""

from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Callable, Optional, TypeVar

from qcfl.core.feature_flags.client import FeatureFlagClient
from qcfl.core.feature_flags.models import UserIdentity

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def feature_flag(
    flag_name: str,
    client: FeatureFlagClient,
    fallback: Optional[Callable[..., Any]] = None,
    user_extractor: Optional[Callable[..., Any]] = None,
) -> Callable[[F], F]:
    """Decorator to gate function execution behind a feature flag.

    Args:
        flag_name: Name of the feature flag
        client: Client holding the flag definitions
        fallback: Called with the same arguments when the flag is disabled
        user_extractor: Builds a UserIdentity (or user dict) from the call arguments

    Example:
        @feature_flag("newDashboard", client, fallback=render_legacy_dashboard,
                      user_extractor=lambda request: request.user)
        def render_dashboard(request):
            ...
    """

    def resolve_user(args: Any, kwargs: Any) -> Any:
        if user_extractor is None:
            return UserIdentity.anonymous()
        try:
            return user_extractor(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Failed to extract flag user: {e}")
            return UserIdentity.anonymous()

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                if client.is_enabled(flag_name, resolve_user(args, kwargs)):
                    return await func(*args, **kwargs)
                if fallback:
                    result = fallback(*args, **kwargs)
                    if inspect.isawaitable(result):
                        result = await result
                    return result
                logger.debug(f"Feature flag '{flag_name}' is disabled, skipping {func.__name__}")
                return None

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if client.is_enabled(flag_name, resolve_user(args, kwargs)):
                return func(*args, **kwargs)
            elif fallback:
                return fallback(*args, **kwargs)
            else:
                logger.debug(f"Feature flag '{flag_name}' is disabled, skipping {func.__name__}")
                return None

        return wrapper  # type: ignore

    return decorator


__all__ = ["feature_flag"]
