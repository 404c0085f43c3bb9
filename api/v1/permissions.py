from django.conf import settings
from rest_framework.permissions import IsAuthenticated

KIOSK_KEY_HEADER = "X-BMS-Kiosk-Key"


def has_kiosk_key(request) -> bool:
    api_key = getattr(settings, "KIOSK_API_KEY", "").strip()
    request_key = request.headers.get(KIOSK_KEY_HEADER, "").strip()
    return bool(api_key and request_key == api_key)


class KioskKeyOrAuth(IsAuthenticated):
    def has_permission(self, request, view):
        if has_kiosk_key(request):
            return True
        return super().has_permission(request, view)
