from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'spaces'

# Note: participants must be registered BEFORE empty prefix to avoid URL conflicts
router = DefaultRouter()
router.register(r'participants', views.ParticipantViewSet, basename='participant')
router.register(r'', views.SpaceViewSet, basename='space')

urlpatterns = [
    # GET    /api/spaces/                             - List spaces
    # POST   /api/spaces/                             - Create space
    # GET    /api/spaces/participants/                - List participants
    # POST   /api/spaces/participants/{id}/archive/   - Archive participant
    # POST   /api/spaces/participants/{id}/restore/   - Restore participant
    path('', include(router.urls)),
]
