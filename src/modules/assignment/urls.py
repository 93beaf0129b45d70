"""Assignment URL configuration."""

from __future__ import annotations

from rest_framework.routers import SimpleRouter

from modules.assignment.views import AssignmentViewSet, SystemViewSet

router = SimpleRouter(trailing_slash=True)
router.register("system", SystemViewSet, basename="assignment-system")
router.register("", AssignmentViewSet, basename="assignment")

urlpatterns = router.urls
