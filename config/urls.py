from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path


def forbidden(request, exception=None):
    return JsonResponse({"message": "No tienes permiso para realizar esta acción."}, status=403)


def not_found(request, exception=None):
    return JsonResponse({"message": "Recurso no encontrado."}, status=404)


handler403 = "config.urls.forbidden"
handler404 = "config.urls.not_found"

urlpatterns = [
    # ✅ back-office Django (paramètres, plans, corrections)
    path("admin/", admin.site.urls),

    path("api/", include("core.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
