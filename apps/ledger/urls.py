from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'ledger'

router = DefaultRouter()
router.register(r'transactions', views.TransactionViewSet, basename='transaction')
router.register(r'drafts', views.DraftViewSet, basename='draft')

urlpatterns = [
    # Transaction routes
    # GET    /api/ledger/transactions/                    - List transactions
    # POST   /api/ledger/transactions/                    - Save a draft
    # GET    /api/ledger/transactions/{id}/               - Get transaction
    # PUT    /api/ledger/transactions/{id}/               - Save a draft over it
    # DELETE /api/ledger/transactions/{id}/               - Soft delete

    # Custom transaction actions
    # POST   /api/ledger/transactions/{id}/restore/       - Undo delete
    # GET    /api/ledger/transactions/{id}/draft/         - Edit-mode draft
    # GET    /api/ledger/transactions/{id}/children/      - Linked records
    # GET    /api/ledger/transactions/{id}/outstanding/   - Remaining debt
    # POST   /api/ledger/transactions/{id}/move/          - Move to space

    # Draft planner routes
    # POST   /api/ledger/drafts/attach-link/
    # POST   /api/ledger/drafts/reallocate/
    # POST   /api/ledger/drafts/update-allocation/
    # POST   /api/ledger/drafts/remove-link/
    # POST   /api/ledger/drafts/swap-direction/
    # POST   /api/ledger/drafts/eligible-parents/
    path('', include(router.urls)),
]
