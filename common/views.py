import uuid

from common.throttling import ClientAddressRateThrottle, RateLimit, default_rate_limit


class RateLimitedViewMixin:
    """Apply the client-address rate limit before authentication and role checks.

    ``rate_limit_action_map`` maps an action (or lower-case HTTP method) to
    ``(max_requests, window_seconds)``; unmapped actions use the configured default.
    """

    throttle_classes = [ClientAddressRateThrottle]
    rate_limit_action_map = {}

    def get_rate_limit(self, request):
        action_key = getattr(self, "action", None) or request.method.lower()
        configured = self.rate_limit_action_map.get(action_key)
        if configured is None:
            return default_rate_limit()
        return RateLimit(*configured)

    def initial(self, request, *args, **kwargs):
        # Same steps as rest_framework.views.APIView.initial, with check_throttles
        # moved ahead of perform_authentication. Keep in step with DRF upgrades.
        self.format_kwarg = self.get_format_suffix(**kwargs)

        neg = self.perform_content_negotiation(request)
        request.accepted_renderer, request.accepted_media_type = neg

        version, scheme = self.determine_version(request, *args, **kwargs)
        request.version, request.versioning_scheme = version, scheme

        self.check_throttles(request)
        self.perform_authentication(request)
        self.check_permissions(request)


def parse_uuid(value):
    """Return ``value`` as a UUID, or None when it is not one."""
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def filter_by_uuid(queryset, lookup, value):
    parsed = parse_uuid(value)
    if parsed is None:
        return queryset.none()
    return queryset.filter(**{lookup: parsed})
