"""
Read-only API views for settlement.

Endpoints:
    GET /api/v1/settlement/purchases/status/?buyer_id=&item_id=
        Current purchase status for a buyer and item
    GET /api/v1/settlement/creators/{creator_id}/earnings-summary/?period_start=&period_end=
        Per-currency earnings totals for a period
    GET /api/v1/settlement/creators/{creator_id}/payouts/
        Paginated payout history

Security:
    - All endpoints require authentication
    - The Stripe webhook lives in settlement.webhooks.views
"""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)

from settlement.models import Creator
from settlement.serializers import (
    EarningsSummarySerializer,
    PayoutSerializer,
    PeriodQuerySerializer,
    PurchaseStatusQuerySerializer,
    PurchaseStatusSerializer,
)
from settlement.services import SettlementQueryService


class PurchaseStatusView(APIView):
    """
    Look up the latest purchase of an item by a buyer.

    GET /api/v1/settlement/purchases/status/?buyer_id=...&item_id=...
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_purchase_status",
        summary="Get purchase status",
        parameters=[
            OpenApiParameter(
                name="buyer_id",
                type=str,
                location=OpenApiParameter.QUERY,
                required=True,
            ),
            OpenApiParameter(
                name="item_id",
                type=str,
                location=OpenApiParameter.QUERY,
                required=True,
            ),
        ],
        responses={
            200: PurchaseStatusSerializer,
            400: OpenApiResponse(description="Missing buyer_id or item_id"),
            404: OpenApiResponse(description="No purchase for this buyer and item"),
        },
        tags=["Settlement"],
    )
    def get(self, request):
        query = PurchaseStatusQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        purchase = SettlementQueryService.purchase_status(
            query.validated_data["buyer_id"], query.validated_data["item_id"]
        )
        if purchase is None:
            return Response(
                {"error": "Purchase not found", "error_code": "PURCHASE_NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(PurchaseStatusSerializer(purchase).data)


class CreatorEarningsSummaryView(APIView):
    """
    Per-currency earnings totals for a creator.

    GET /api/v1/settlement/creators/{creator_id}/earnings-summary/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_creator_earnings_summary",
        summary="Get creator earnings summary",
        parameters=[
            OpenApiParameter(
                name="period_start",
                type=str,
                location=OpenApiParameter.QUERY,
                required=True,
                description="Inclusive ISO date (YYYY-MM-DD)",
            ),
            OpenApiParameter(
                name="period_end",
                type=str,
                location=OpenApiParameter.QUERY,
                required=True,
                description="Inclusive ISO date (YYYY-MM-DD)",
            ),
        ],
        responses={200: EarningsSummarySerializer(many=True)},
        tags=["Settlement"],
    )
    def get(self, request, creator_id):
        creator = get_object_or_404(Creator, id=creator_id)

        query = PeriodQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        rows = SettlementQueryService.earnings_summary(
            creator.id,
            query.validated_data["period_start"],
            query.validated_data["period_end"],
        )
        return Response(EarningsSummarySerializer(rows, many=True).data)


@extend_schema(
    operation_id="list_creator_payouts",
    summary="List creator payouts",
    tags=["Settlement"],
)
class CreatorPayoutListView(generics.ListAPIView):
    """
    Payout history for a creator, newest first.

    GET /api/v1/settlement/creators/{creator_id}/payouts/
    """

    permission_classes = [IsAuthenticated]
    serializer_class = PayoutSerializer

    def get_queryset(self):
        creator = get_object_or_404(Creator, id=self.kwargs["creator_id"])
        return SettlementQueryService.payout_history(creator.id)
