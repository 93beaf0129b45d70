"""Worker URL configuration."""

from __future__ import annotations

from rest_framework.routers import SimpleRouter

from modules.staff.views import WorkerViewSet

router = SimpleRouter(trailing_slash=True)
router.register("workers", WorkerViewSet, basename="worker")

urlpatterns = router.urls
