from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from django.conf import settings
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .models import Transaction
from .serializers import (
    TransactionSerializer,
    TransactionListSerializer,
    TransactionDraftSerializer,
    LinkCandidateSerializer,
    DraftResultSerializer,
    LINKABLE_ROLES,
    # Input serializers
    TransactionFilterSerializer,
    OutstandingQuerySerializer,
    MoveInputSerializer,
    AttachLinkInputSerializer,
    ReallocateInputSerializer,
    UpdateAllocationInputSerializer,
    RemoveLinkInputSerializer,
    EligibleParentsInputSerializer,
    DraftInputSerializer,
)
from .services import (
    TransactionDraft,
    list_transactions,
    load_snapshot,
    load_transactions_by_ids,
    query_by_parent,
    create_transaction,
    update_transaction,
    delete_transaction,
    restore_transaction,
    move_transaction_to_space,
    outstanding,
    settlement_remaining,
    eligible_parents,
    attach_link,
    reallocate,
    update_allocation,
    remove_link,
    swap_direction,
    cap_refund_links,
    finalize_draft,
    # Exceptions
    LedgerValidationError,
    TransactionNotFoundError,
    ActiveChildrenError,
)
from .services.exceptions import TransactionNotFoundAPIError, ActiveChildrenAPIError
from apps.spaces.services import get_space_by_id, SpaceNotFoundError


class TransactionPagination(PageNumberPagination):
    """Custom pagination for transaction history."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 500


def _draft_space(draft: TransactionDraft):
    return get_space_by_id(space_id=draft.space_id or settings.LEDGER_DEFAULT_SPACE)


def _refund_parents(draft: TransactionDraft):
    # Parents may live in another space or be deleted
    ids = draft.linked_parent_ids + ([draft.transaction_id] if draft.transaction_id else [])
    return load_transactions_by_ids(ids)


class TransactionViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    """
    ViewSet for ledger transactions.

    Records are created and updated from drafts so the same validation
    and sign rules apply as in the planner.

    list: Get transactions (filterable by space/kind/date)
    create: Save a draft as a new transaction
    retrieve: Get a specific transaction (deleted ones included)
    update: Save a draft over an existing transaction
    destroy: Soft delete a transaction
    """

    queryset = Transaction.objects.select_related('payer', 'space')
    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = TransactionPagination

    def get_queryset(self):
        """Filter transactions using input serializer validation."""
        if self.action != 'list':
            return super().get_queryset()

        filter_serializer = TransactionFilterSerializer(data=self.request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        params = filter_serializer.validated_data

        return list_transactions(
            space=params.get('space'),
            kind=params.get('kind'),
            date_from=params.get('date_from'),
            date_to=params.get('date_to'),
            include_deleted=params['include_deleted'],
        )

    def get_serializer_class(self):
        """Use different serializers for different actions."""
        if self.action == 'list':
            return TransactionListSerializer
        return TransactionSerializer

    @extend_schema(request=TransactionDraftSerializer, responses={201: TransactionSerializer})
    def create(self, request, *args, **kwargs):
        """Validate a draft and save it as a new transaction."""
        serializer = TransactionDraftSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        draft = serializer.to_draft()
        draft.transaction_id = None

        try:
            space = _draft_space(draft)
        except SpaceNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

        try:
            draft.apply(cap_refund_links(draft, _refund_parents(draft)))
            txn = create_transaction(space=space, fields=finalize_draft(draft))
        except LedgerValidationError as e:
            return Response(e.as_dict(), status=status.HTTP_400_BAD_REQUEST)

        return Response(TransactionSerializer(txn).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=TransactionDraftSerializer, responses={200: TransactionSerializer})
    def update(self, request, *args, **kwargs):
        """Validate a draft and save it over an existing transaction."""
        txn = self.get_object()

        serializer = TransactionDraftSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        draft = serializer.to_draft()
        draft.transaction_id = str(txn.id)
        draft.space_id = txn.space_id

        try:
            draft.apply(cap_refund_links(draft, _refund_parents(draft)))
            txn = update_transaction(transaction_id=txn.id, fields=finalize_draft(draft))
        except LedgerValidationError as e:
            return Response(e.as_dict(), status=status.HTTP_400_BAD_REQUEST)

        return Response(TransactionSerializer(txn).data)

    def destroy(self, request, *args, **kwargs):
        """Soft delete a transaction that nothing active links to."""
        try:
            delete_transaction(transaction_id=kwargs.get('pk'))
        except TransactionNotFoundError:
            raise TransactionNotFoundAPIError()
        except ActiveChildrenError as e:
            raise ActiveChildrenAPIError(str(e))

        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def restore(self, request, pk=None):
        """
        Undo a soft delete.

        POST /api/ledger/transactions/{id}/restore/
        """
        try:
            txn = restore_transaction(transaction_id=pk)
        except TransactionNotFoundError:
            raise TransactionNotFoundAPIError()

        return Response(TransactionSerializer(txn).data)

    @action(detail=True, methods=['get'])
    def draft(self, request, pk=None):
        """
        Get an edit-mode draft of a saved transaction.

        GET /api/ledger/transactions/{id}/draft/
        """
        txn = self.get_object()
        draft = TransactionDraft.from_transaction(txn)
        return Response(TransactionDraftSerializer(draft).data)

    @extend_schema(
        parameters=[
            OpenApiParameter('include_deleted', OpenApiTypes.BOOL, description='Include deleted children'),
        ],
        responses={200: TransactionListSerializer(many=True)},
    )
    @action(detail=True, methods=['get'])
    def children(self, request, pk=None):
        """
        Get every record that links to this transaction.

        GET /api/ledger/transactions/{id}/children/
        """
        txn = self.get_object()
        include_deleted = request.query_params.get('include_deleted') in ('true', '1', 'True')
        children = query_by_parent(txn.id, include_deleted=include_deleted)
        serializer = TransactionListSerializer(children, many=True)
        return Response(serializer.data)

    @extend_schema(
        parameters=[
            OpenApiParameter('debtor', OpenApiTypes.STR, required=True, description='Participant id'),
        ],
        responses={200: OpenApiTypes.OBJECT},
    )
    @action(detail=True, methods=['get'])
    def outstanding(self, request, pk=None):
        """
        Get what a participant still owes on this transaction.

        GET /api/ledger/transactions/{id}/outstanding/?debtor=alice
        """
        txn = self.get_object()

        query_serializer = OutstandingQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)
        debtor = query_serializer.validated_data['debtor']

        snapshot = load_snapshot(space=txn.space)
        data = {
            'transaction_id': str(txn.id),
            'debtor': debtor,
            'outstanding': outstanding(txn, debtor, snapshot),
        }
        if txn.is_repayment:
            data['settlement_remaining'] = settlement_remaining(txn, snapshot)

        return Response(data)

    @extend_schema(request=MoveInputSerializer, responses={200: TransactionSerializer})
    @action(detail=True, methods=['post'])
    def move(self, request, pk=None):
        """
        Move a transaction and its children to another space.

        POST /api/ledger/transactions/{id}/move/
        Body: {"space": "trip"}
        """
        txn = self.get_object()

        serializer = MoveInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            space = get_space_by_id(space_id=serializer.validated_data['space'])
        except SpaceNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

        txn = move_transaction_to_space(transaction_id=txn.id, space=space)
        return Response(TransactionSerializer(txn).data)


class DraftViewSet(viewsets.ViewSet):
    """
    Planner operations on unsaved drafts.

    Every action takes the current draft and returns the updated one.
    Nothing is written to the database.
    """

    permission_classes = [IsAuthenticated]

    def _result(self, draft, patch):
        draft.apply(patch)
        return Response({
            'draft': TransactionDraftSerializer(draft).data,
            'flipped': patch.flipped,
        })

    def _run(self, serializer_class, request, plan):
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        draft = serializer.to_draft()

        try:
            patch = plan(draft, serializer.validated_data)
        except SpaceNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except TransactionNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except LedgerValidationError as e:
            return Response(e.as_dict(), status=status.HTTP_400_BAD_REQUEST)

        return self._result(draft, patch)

    @extend_schema(request=AttachLinkInputSerializer, responses={200: DraftResultSerializer})
    @action(detail=False, methods=['post'], url_path='attach-link')
    def attach_link(self, request):
        """
        Link a parent to the draft.

        POST /api/ledger/drafts/attach-link/
        Body: {"draft": {...}, "parent_id": "...", "role": "settlement"}
        """
        def plan(draft, params):
            draft.kind = params.get('role') or draft.kind
            snapshot = load_snapshot(space=_draft_space(draft))
            parent_id = str(params['parent_id'])
            parent = next((t for t in snapshot if str(t.id) == parent_id), None)
            if parent is None:
                raise TransactionNotFoundError(f"Transaction {parent_id} not found")
            return attach_link(draft, parent, draft.kind, snapshot)

        return self._run(AttachLinkInputSerializer, request, plan)

    @extend_schema(request=ReallocateInputSerializer, responses={200: DraftResultSerializer})
    @action(detail=False, methods=['post'])
    def reallocate(self, request):
        """
        Spread a new total over the draft's links.

        POST /api/ledger/drafts/reallocate/
        Body: {"draft": {...}, "amount": 6000}
        """
        return self._run(
            ReallocateInputSerializer, request,
            lambda draft, params: reallocate(draft, params['amount']),
        )

    @extend_schema(request=UpdateAllocationInputSerializer, responses={200: DraftResultSerializer})
    @action(detail=False, methods=['post'], url_path='update-allocation')
    def update_allocation(self, request):
        """Set one link's allocation by hand."""
        return self._run(
            UpdateAllocationInputSerializer, request,
            lambda draft, params: update_allocation(draft, params['parent_id'], params['allocated_amount']),
        )

    @extend_schema(request=RemoveLinkInputSerializer, responses={200: DraftResultSerializer})
    @action(detail=False, methods=['post'], url_path='remove-link')
    def remove_link(self, request):
        """Remove a link from the draft."""
        return self._run(
            RemoveLinkInputSerializer, request,
            lambda draft, params: remove_link(draft, params['parent_id']),
        )

    @extend_schema(request=DraftInputSerializer, responses={200: DraftResultSerializer})
    @action(detail=False, methods=['post'], url_path='swap-direction')
    def swap_direction(self, request):
        """Swap who pays whom on a settlement or forgiveness draft."""
        return self._run(
            DraftInputSerializer, request,
            lambda draft, params: swap_direction(draft),
        )

    @extend_schema(request=EligibleParentsInputSerializer, responses={200: LinkCandidateSerializer(many=True)})
    @action(detail=False, methods=['post'], url_path='eligible-parents')
    def eligible_parents(self, request):
        """
        List the parents the draft can link to.

        POST /api/ledger/drafts/eligible-parents/
        Body: {"draft": {...}, "counterpart": "alice"}
        """
        serializer = EligibleParentsInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        draft = serializer.to_draft()

        if draft.kind not in LINKABLE_ROLES:
            return Response(
                {'field': 'kind', 'message': f"Records of kind '{draft.kind}' don't link to parents"},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            snapshot = load_snapshot(space=_draft_space(draft))
        except SpaceNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

        candidates = eligible_parents(
            draft.kind,
            snapshot,
            counterpart=serializer.validated_data.get('counterpart') or None,
            exclude_ids=draft.linked_parent_ids,
            exclude_id=draft.transaction_id,
        )
        return Response(LinkCandidateSerializer(candidates, many=True).data)
