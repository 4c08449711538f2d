"""
Referrals - commission balances, PIX keys and withdrawal requests.

A referrer earns a commission row per referred subscription. Commissions
with status ``paid`` are credited to the referrer's balance; every
withdrawal request that was not rejected is drawn from it. Withdrawals are
created ``pending`` and moved along by an admin:

    pending -> approved -> paid
    pending | approved -> rejected
"""
import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from ..config.settings import Settings, get_settings
from ..data.store import FrameStore, utc_now
from ..engine.models import to_decimal
from ..exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PIX_KEY_TYPES = ('cpf', 'cnpj', 'email', 'phone', 'random')

# Withdrawals in these states are drawn from the balance
_RESERVED_STATUSES = ('pending', 'approved', 'paid')

_TRANSITIONS = {
    'pending': ('approved', 'rejected'),
    'approved': ('paid', 'rejected'),
}

_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_RANDOM_KEY_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)


def _digits(value: str) -> str:
    return re.sub(r'\D', '', value)


def validate_pix_key(pix_key: str, pix_key_type: str) -> bool:
    """Check a PIX key against the format of its type."""
    if not pix_key or pix_key_type not in PIX_KEY_TYPES:
        return False
    key = pix_key.strip()
    if pix_key_type == 'cpf':
        return re.fullmatch(r'[\d.\-]+', key) is not None and len(_digits(key)) == 11
    if pix_key_type == 'cnpj':
        return re.fullmatch(r'[\d./\-]+', key) is not None and len(_digits(key)) == 14
    if pix_key_type == 'email':
        return _EMAIL_RE.match(key) is not None
    if pix_key_type == 'phone':
        return re.fullmatch(r'[\d\s()+\-]+', key) is not None and 10 <= len(_digits(key)) <= 13
    return _RANDOM_KEY_RE.match(key) is not None


def format_pix_key(pix_key: str, pix_key_type: str) -> str:
    """Display form: masked punctuation for CPF/CNPJ, raw value otherwise."""
    digits = _digits(pix_key)
    if pix_key_type == 'cpf' and len(digits) == 11:
        return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"
    if pix_key_type == 'cnpj' and len(digits) == 14:
        return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"
    return pix_key


def generate_referral_code() -> str:
    suffix = ''.join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(5))
    return f"REF{int(time.time() * 1000)}{suffix}"


@dataclass
class ReferralStats:
    total_referrals: int
    active_referrals: int
    total_commissions: Decimal
    pending_commissions: Decimal
    paid_commissions: Decimal
    available_for_withdrawal: Decimal

    def to_dict(self) -> dict:
        return {
            'totalReferrals': self.total_referrals,
            'activeReferrals': self.active_referrals,
            'totalCommissions': self.total_commissions,
            'pendingCommissions': self.pending_commissions,
            'paidCommissions': self.paid_commissions,
            'availableForWithdrawal': self.available_for_withdrawal,
        }


def _total(rows: list[dict], column: str = 'amount') -> Decimal:
    return sum((to_decimal(r.get(column)) or Decimal('0') for r in rows), Decimal('0'))


class ReferralService:
    """Referral program operations for one store."""

    def __init__(
        self,
        store: FrameStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], str] = utc_now,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock

    def _get_user(self, user_id: str) -> dict:
        user = self.store.select_one('users', eq={'id': user_id}) if user_id else None
        if not user:
            raise NotFoundError("User not found")
        return user

    # ------------------------------------------------------------------
    # Referral code and balance
    # ------------------------------------------------------------------

    def ensure_referral_code(self, user_id: str) -> str:
        """Return the user's referral code, creating one on first use."""
        user = self._get_user(user_id)
        if user.get('referral_code'):
            return user['referral_code']

        code = generate_referral_code()
        self.store.update('users', {'referral_code': code, 'updated_at': self.clock()}, eq={'id': user_id})
        logger.info("Generated referral code for user %s", user_id)
        return code

    def get_stats(self, user_id: str) -> ReferralStats:
        self._get_user(user_id)
        commissions = self.store.select('referral_commissions', eq={'referrer_id': user_id})
        paid = [c for c in commissions if c.get('status') == 'paid']
        pending = [c for c in commissions if c.get('status') == 'pending']

        reserved = self.store.select(
            'withdrawal_requests', eq={'user_id': user_id}, in_={'status': list(_RESERVED_STATUSES)}
        )
        available = max(_total(paid) - _total(reserved), Decimal('0'))

        return ReferralStats(
            total_referrals=self.store.count('users', eq={'referred_by': user_id}),
            active_referrals=len({c['referred_user_id'] for c in commissions if c.get('referred_user_id')}),
            total_commissions=_total(commissions),
            pending_commissions=_total(pending),
            paid_commissions=_total(paid),
            available_for_withdrawal=available,
        )

    def list_commissions(self, user_id: str) -> list[dict]:
        return self.store.select('referral_commissions', eq={'referrer_id': user_id},
                                 order_by='created_at', ascending=False)

    # ------------------------------------------------------------------
    # PIX keys
    # ------------------------------------------------------------------

    def list_pix_keys(self, user_id: str) -> list[dict]:
        return self.store.select('user_pix_keys', eq={'user_id': user_id}, order_by='created_at', ascending=False)

    def save_pix_key(
        self,
        user_id: str,
        pix_key: str,
        pix_key_type: str,
        holder_name: str,
        key_id: Optional[str] = None,
    ) -> dict:
        """Create a PIX key, or update ``key_id`` when given."""
        self._get_user(user_id)
        if not validate_pix_key(pix_key, pix_key_type):
            raise ValidationError("Invalid PIX key for the selected type")
        if not holder_name or not holder_name.strip():
            raise ValidationError("Holder name is required")

        values = {
            'pix_key': pix_key.strip(),
            'pix_key_type': pix_key_type,
            'holder_name': holder_name.strip(),
            'updated_at': self.clock(),
        }

        clash = self.store.select_one('user_pix_keys', eq={'user_id': user_id, 'pix_key': values['pix_key']})
        if clash and clash['id'] != key_id:
            raise ValidationError("PIX key already registered")

        if key_id:
            updated = self.store.update('user_pix_keys', values, eq={'id': key_id, 'user_id': user_id})
            if not updated:
                raise NotFoundError("PIX key not found")
            return updated[0]

        values.update({'user_id': user_id, 'created_at': values['updated_at']})
        return self.store.insert('user_pix_keys', [values])[0]

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    def list_withdrawals(self, user_id: str) -> list[dict]:
        return self.store.select('withdrawal_requests', eq={'user_id': user_id},
                                 order_by='created_at', ascending=False)

    def request_withdrawal(self, user_id: str, amount, pix_key_id: Optional[str]) -> dict:
        """
        Create a pending withdrawal against the available balance.

        Raises:
            ValidationError: bad amount, below the minimum, above the balance, no key chosen
            NotFoundError: unknown user, or PIX key not owned by the user
        """
        self._get_user(user_id)

        try:
            value = to_decimal(amount)
        except InvalidOperation:
            value = None
        if value is None or not value.is_finite() or value <= 0:
            raise ValidationError("Invalid amount")

        minimum = self.settings.min_withdrawal_amount
        if value < minimum:
            raise ValidationError(f"Minimum withdrawal amount is {minimum:.2f}")

        available = self.get_stats(user_id).available_for_withdrawal
        if value > available:
            raise ValidationError(
                "Amount exceeds the balance available for withdrawal",
                details=f"requested {value:.2f}, available {available:.2f}",
            )

        if not pix_key_id:
            raise ValidationError("Select a PIX key")
        key = self.store.select_one('user_pix_keys', eq={'id': pix_key_id, 'user_id': user_id})
        if not key:
            raise NotFoundError("PIX key not found")

        row = self.store.insert('withdrawal_requests', [{
            'user_id': user_id,
            'amount': value,
            'pix_key': key['pix_key'],
            'pix_key_type': key['pix_key_type'],
            'status': 'pending',
            'created_at': self.clock(),
        }])[0]
        logger.info("Withdrawal of %s requested by user %s", value, user_id)
        return row

    def process_withdrawal(
        self,
        request_id: str,
        status: str,
        processed_by: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> dict:
        """Move a withdrawal to its next status."""
        current = self.store.select_one('withdrawal_requests', eq={'id': request_id})
        if not current:
            raise NotFoundError("Withdrawal request not found")

        allowed = _TRANSITIONS.get(current['status'], ())
        if status not in allowed:
            raise ValidationError(f"Cannot move a {current['status']} withdrawal to {status}")

        updates = {'status': status, 'processed_at': self.clock(), 'processed_by': processed_by}
        if admin_notes is not None:
            updates['admin_notes'] = admin_notes
        row = self.store.update('withdrawal_requests', updates, eq={'id': request_id})[0]
        logger.info("Withdrawal %s moved from %s to %s", request_id, current['status'], status)
        return row
