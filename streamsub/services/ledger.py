"""
Subscription lifecycle: activation, payment reconciliation, cancellation,
plan changes and renewals.

Every mutating operation is committed here as one unit. Status changes are
conditional UPDATEs (``SubscriptionRepo.transition``) so two requests racing
on the same record cannot both apply; the loser sees ``NotFound`` or a no-op.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from streamsub.core.clock import Clock, utcnow
from streamsub.core.exceptions import (
    ConflictException,
    InvalidStateException,
    NotFoundException,
    PaymentDeclinedException,
    ValidationException,
)
from streamsub.db.models.plan import Plan
from streamsub.db.models.subscription import (
    SubscriptionPayment,
    SubscriptionStatus,
    UserSubscription,
)
from streamsub.repositories.plan_repo import PlanRepo
from streamsub.repositories.subscription_repo import SubscriptionRepo
from streamsub.schemas.webhook import CardAuthorization, WebhookEvent
from streamsub.services.payment_gateway import PaymentGateway
from streamsub.services.periods import period_end, validate_billing_cycle


logger = logging.getLogger(__name__)

PAYMENT_METHODS = {"paystack", "credit_card", "bank_transfer"}
CHARGE_SUCCESS_EVENT = "charge.success"

NO_ACTIVE_SUBSCRIPTION = "No active subscription found"


def _card_fields(authorization: Optional[CardAuthorization]) -> Dict[str, Any]:
    if authorization is None:
        return {}
    fields = authorization.model_dump(exclude_none=True)
    return {key: value for key, value in fields.items() if value != ""}


class SubscriptionLedger:
    """Owns the state of every user's subscription instances."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway,
        clock: Clock = utcnow,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.clock = clock
        self.plans = PlanRepo(session)
        self.subscriptions = SubscriptionRepo(session)

    # ------------------------------------------------------------------ reads

    async def get(self, subscription_id: UUID) -> UserSubscription:
        subscription = await self.subscriptions.get(subscription_id)
        if subscription is None:
            raise NotFoundException("Subscription not found")
        return subscription

    async def current(self, user_id: str) -> UserSubscription:
        subscription = await self.subscriptions.get_active_for_user(user_id)
        if subscription is None:
            raise NotFoundException(NO_ACTIVE_SUBSCRIPTION)
        return subscription

    async def history(self, user_id: str) -> list[UserSubscription]:
        return await self.subscriptions.list_for_user(user_id)

    async def list_instances(
        self,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[UserSubscription]:
        if status is not None and status not in SubscriptionStatus.ALL:
            raise ValidationException(f"Unknown subscription status '{status}'")
        return await self.subscriptions.list_instances(
            status=status, user_id=user_id, limit=limit, offset=offset
        )

    # ------------------------------------------------------------- activation

    async def subscribe(
        self,
        user_id: str,
        plan_id: UUID,
        billing_cycle: Optional[str] = None,
        payment_method: str = "paystack",
        auto_renew: bool = True,
        email: Optional[str] = None,
        authorization_code: Optional[str] = None,
    ) -> UserSubscription:
        """Activate a plan directly, without a gateway round-trip."""

        if payment_method not in PAYMENT_METHODS:
            raise ValidationException(f"Invalid payment method '{payment_method}'")
        plan, cycle = await self._resolve_plan(plan_id, billing_cycle)
        await self._ensure_no_active(user_id)

        now = self.clock()
        subscription = self._new_instance(
            user_id,
            plan,
            cycle,
            status=SubscriptionStatus.ACTIVE,
            start=now,
            auto_renew=auto_renew,
            payment_method=payment_method,
            customer_email=email,
            authorization_code=authorization_code,
        )
        await self._insert(subscription)
        logger.info(f"User {user_id} subscribed to {plan.name} ({cycle}) as {subscription.id}")
        return await self.get(subscription.id)

    async def initialize_payment(
        self,
        user_id: str,
        email: str,
        plan_id: UUID,
        billing_cycle: Optional[str] = None,
        auto_renew: bool = True,
    ) -> Tuple[UserSubscription, str, str]:
        """Open a gateway checkout and record a pending instance to reconcile later.

        Returns the pending instance, the checkout URL and the gateway reference.
        """

        if not email:
            raise ValidationException("A contact email is required to start a payment")
        plan, cycle = await self._resolve_plan(plan_id, billing_cycle)
        await self._ensure_no_active(user_id)

        metadata = {
            "user_id": user_id,
            "plan_id": str(plan.id),
            "billing_cycle": cycle,
            "amount": str(plan.amount),
            "auto_renew": auto_renew,
        }
        init = await self.gateway.initialize(email, plan.amount, plan.currency, metadata)

        subscription = self._new_instance(
            user_id,
            plan,
            cycle,
            status=SubscriptionStatus.PENDING,
            start=self.clock(),
            auto_renew=auto_renew,
            payment_method="paystack",
            customer_email=email,
        )
        subscription.payment_reference = init.reference
        subscription.access_code = init.access_code
        subscription.authorization_url = init.authorization_url
        await self._insert(subscription)
        logger.info(
            f"Pending subscription {subscription.id} for user {user_id} awaiting payment {init.reference}"
        )
        return await self.get(subscription.id), init.authorization_url, init.reference

    # --------------------------------------------------------- reconciliation

    async def verify_payment(self, reference: str, user_id: str) -> UserSubscription:
        """Reconcile a pending instance against the gateway's verification result."""

        subscription = await self.subscriptions.find_by_reference(reference, user_id=user_id)
        if subscription is None:
            raise NotFoundException("No subscription found for this payment reference")

        if subscription.status == SubscriptionStatus.ACTIVE and await self.subscriptions.has_payment(
            subscription.id, reference
        ):
            return subscription
        if subscription.status != SubscriptionStatus.PENDING:
            raise InvalidStateException(
                f"Subscription is {subscription.status}; payment can no longer be verified"
            )

        result = await self.gateway.verify(reference)
        if result.succeeded:
            await self._activate_pending(subscription, reference, result.amount, result.authorization)
            return await self.get(subscription.id)

        now = self.clock()
        failed = await self.subscriptions.transition(
            subscription.id, SubscriptionStatus.PENDING, status=SubscriptionStatus.EXPIRED
        )
        if failed:
            await self.subscriptions.add_payment(
                SubscriptionPayment(
                    subscription_id=subscription.id,
                    amount=result.amount,
                    reference=reference,
                    status="failed",
                    paid_at=now,
                )
            )
        await self.session.commit()
        logger.warning(f"Payment {reference} for subscription {subscription.id} reported {result.status}")
        raise PaymentDeclinedException("Payment verification failed")

    async def handle_webhook(self, event: WebhookEvent) -> bool:
        """Apply a gateway push notification. Never raises.

        Delivery is at-least-once: a payment reference is recorded at most
        once per instance, so redelivered events are no-ops. Returns whether
        the event changed anything.
        """

        if event.event != CHARGE_SUCCESS_EVENT:
            logger.info(f"Ignoring webhook event type: {event.event}")
            return False
        reference = event.data.reference
        if not reference:
            logger.warning("charge.success webhook without a reference")
            return False

        try:
            return await self._apply_charge_success(event, reference)
        except Exception:
            logger.exception(f"Failed to process webhook for payment {reference}")
            await self.session.rollback()
            return False

    async def _apply_charge_success(self, event: WebhookEvent, reference: str) -> bool:
        subscription = await self.subscriptions.find_by_reference(reference)
        if subscription is None:
            logger.warning(f"No subscription matches webhook payment {reference}")
            return False

        amount = subscription.amount
        if event.data.amount is not None:
            amount = (Decimal(event.data.amount) / 100).quantize(Decimal("0.01"))

        if subscription.status == SubscriptionStatus.PENDING:
            return await self._activate_pending(
                subscription, reference, amount, event.data.authorization
            )

        if subscription.status == SubscriptionStatus.ACTIVE:
            if await self.subscriptions.has_payment(subscription.id, reference):
                logger.info(f"Duplicate webhook for payment {reference}; already recorded")
                return False
            await self.subscriptions.add_payment(
                SubscriptionPayment(
                    subscription_id=subscription.id,
                    amount=amount,
                    reference=reference,
                    status="success",
                    paid_at=self.clock(),
                )
            )
            card = _card_fields(event.data.authorization)
            if card:
                await self.subscriptions.transition(subscription.id, SubscriptionStatus.ACTIVE, **card)
            await self.session.commit()
            logger.info(f"Recorded payment {reference} on active subscription {subscription.id}")
            return True

        logger.warning(
            f"Webhook payment {reference} targets {subscription.status} subscription {subscription.id}; ignored"
        )
        return False

    async def _activate_pending(
        self,
        subscription: UserSubscription,
        reference: str,
        amount: Decimal,
        authorization: Optional[CardAuthorization],
    ) -> bool:
        """Move a pending instance to active, starting its first period now."""

        subscription_id, user_id = subscription.id, subscription.user_id
        now = self.clock()
        try:
            activated = await self.subscriptions.transition(
                subscription_id,
                SubscriptionStatus.PENDING,
                status=SubscriptionStatus.ACTIVE,
                start_date=now,
                end_date=period_end(now, subscription.billing_cycle),
                **_card_fields(authorization),
            )
        except IntegrityError as exc:
            await self.session.rollback()
            logger.error(
                f"Payment {reference} succeeded but user {user_id} already has an active subscription"
            )
            raise ConflictException("User already has an active subscription") from exc

        if not activated:
            # Lost the race to a concurrent verify/webhook for the same payment.
            return False

        if not await self.subscriptions.has_payment(subscription_id, reference):
            await self.subscriptions.add_payment(
                SubscriptionPayment(
                    subscription_id=subscription_id,
                    amount=amount,
                    reference=reference,
                    status="success",
                    paid_at=now,
                )
            )
        await self.session.commit()
        logger.info(f"Activated subscription {subscription_id} from payment {reference}")
        return True

    # ----------------------------------------------------------- user actions

    async def cancel(self, user_id: str, subscription_id: UUID) -> UserSubscription:
        now = self.clock()
        cancelled = await self.subscriptions.transition(
            subscription_id,
            SubscriptionStatus.ACTIVE,
            conditions=[UserSubscription.user_id == user_id],
            status=SubscriptionStatus.CANCELLED,
            cancelled_at=now,
            auto_renew=False,
        )
        if not cancelled:
            raise NotFoundException(NO_ACTIVE_SUBSCRIPTION)
        await self.session.commit()
        logger.info(f"User {user_id} cancelled subscription {subscription_id}")
        return await self.get(subscription_id)

    async def set_auto_renew(self, user_id: str, subscription_id: UUID, value: bool) -> UserSubscription:
        updated = await self.subscriptions.transition(
            subscription_id,
            SubscriptionStatus.ACTIVE,
            conditions=[UserSubscription.user_id == user_id],
            auto_renew=value,
        )
        if not updated:
            raise NotFoundException(NO_ACTIVE_SUBSCRIPTION)
        await self.session.commit()
        return await self.get(subscription_id)

    async def change_plan(
        self,
        user_id: str,
        plan_id: UUID,
        billing_cycle: Optional[str] = None,
    ) -> Tuple[UserSubscription, UserSubscription]:
        """Replace the active instance with a fresh full-length one on ``plan_id``.

        No proration: time left on the previous instance is forfeited.
        """

        current = await self.subscriptions.get_active_for_user(user_id)
        if current is None:
            raise NotFoundException(NO_ACTIVE_SUBSCRIPTION)
        plan, cycle = await self._resolve_plan(plan_id, billing_cycle)
        if plan.id == current.plan_id and cycle == current.billing_cycle:
            raise InvalidStateException("Already subscribed to this plan")

        now = self.clock()
        superseded = await self.subscriptions.transition(
            current.id,
            SubscriptionStatus.ACTIVE,
            status=SubscriptionStatus.CANCELLED,
            cancelled_at=now,
            auto_renew=False,
        )
        if not superseded:
            raise NotFoundException(NO_ACTIVE_SUBSCRIPTION)

        replacement = self._new_instance(
            user_id,
            plan,
            cycle,
            status=SubscriptionStatus.ACTIVE,
            start=now,
            auto_renew=current.auto_renew,
            payment_method=current.payment_method,
            customer_email=current.customer_email,
            authorization_code=current.authorization_code,
        )
        for field in ("card_type", "last4", "exp_month", "exp_year", "bank", "account_name"):
            setattr(replacement, field, getattr(current, field))
        await self._insert(replacement)
        logger.info(
            f"User {user_id} changed plan {current.plan_name} -> {plan.name}; "
            f"{current.id} cancelled, {replacement.id} active"
        )
        return await self.get(current.id), await self.get(replacement.id)

    async def renew(self, user_id: Optional[str], subscription_id: UUID) -> UserSubscription:
        """Charge the stored authorization and start the next billing period.

        ``user_id`` of None skips the ownership check (scanner path). Gateway
        errors propagate and leave the record untouched.
        """

        subscription = (
            await self.subscriptions.get(subscription_id)
            if user_id is None
            else await self.subscriptions.get_for_user(subscription_id, user_id)
        )
        if subscription is None:
            raise NotFoundException("Subscription not found")
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidStateException(f"Cannot renew a {subscription.status} subscription")
        if not subscription.auto_renew:
            raise InvalidStateException("Auto-renew is disabled for this subscription")
        if not subscription.authorization_code:
            raise InvalidStateException("No stored payment authorization to charge")
        if not subscription.customer_email:
            raise InvalidStateException("No contact email on file for renewal")

        metadata = {
            "user_id": subscription.user_id,
            "subscription_id": str(subscription.id),
            "plan_id": str(subscription.plan_id),
            "billing_cycle": subscription.billing_cycle,
            "renewal": True,
        }
        charge = await self.gateway.charge_authorization(
            subscription.authorization_code,
            subscription.customer_email,
            subscription.amount,
            subscription.currency,
            metadata,
        )
        if not charge.succeeded:
            raise PaymentDeclinedException(f"Renewal charge {charge.reference} returned {charge.status}")

        subscription_id, amount = subscription.id, subscription.amount
        now = self.clock()
        renewed = await self.subscriptions.transition(
            subscription_id,
            SubscriptionStatus.ACTIVE,
            start_date=now,
            end_date=period_end(now, subscription.billing_cycle),
        )
        if not renewed:
            logger.error(
                f"Renewal charge {charge.reference} succeeded but subscription {subscription_id} is no longer active"
            )
            raise InvalidStateException("Subscription changed while renewing")
        await self.subscriptions.add_payment(
            SubscriptionPayment(
                subscription_id=subscription_id,
                amount=amount,
                reference=charge.reference,
                status="success",
                paid_at=now,
            )
        )
        await self.session.commit()
        logger.info(f"Renewed subscription {subscription_id} with charge {charge.reference}")
        return await self.get(subscription_id)

    async def expire_one(self, subscription_id: UUID) -> UserSubscription:
        """Force a subscription to expired (admin/test utility)."""

        expired = await self.subscriptions.transition(
            subscription_id,
            None,
            status=SubscriptionStatus.EXPIRED,
            end_date=self.clock(),
        )
        if not expired:
            raise NotFoundException("Subscription not found")
        await self.session.commit()
        logger.info(f"Force-expired subscription {subscription_id}")
        return await self.get(subscription_id)

    # ---------------------------------------------------------------- helpers

    async def _resolve_plan(self, plan_id: UUID, billing_cycle: Optional[str]) -> Tuple[Plan, str]:
        plan = await self.plans.get(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundException("Subscription plan not found or inactive")
        cycle = validate_billing_cycle(billing_cycle or plan.billing_cycle)
        return plan, cycle

    async def _ensure_no_active(self, user_id: str) -> None:
        if await self.subscriptions.has_active(user_id):
            raise ConflictException("User already has an active subscription")

    def _new_instance(
        self,
        user_id: str,
        plan: Plan,
        cycle: str,
        *,
        status: str,
        start: datetime,
        auto_renew: bool,
        payment_method: str,
        customer_email: Optional[str] = None,
        authorization_code: Optional[str] = None,
    ) -> UserSubscription:
        return UserSubscription(
            user_id=user_id,
            customer_email=customer_email,
            plan_id=plan.id,
            plan_name=plan.name,
            amount=plan.amount,
            currency=plan.currency,
            billing_cycle=cycle,
            status=status,
            start_date=start,
            end_date=period_end(start, cycle),
            auto_renew=auto_renew,
            payment_method=payment_method,
            authorization_code=authorization_code,
        )

    async def _insert(self, subscription: UserSubscription) -> None:
        try:
            await self.subscriptions.add(subscription)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictException("User already has an active subscription") from exc
