"""
Reward issuer.

Generates human-presentable redemption codes (prefix + random suffix) and
adds one-time Reward rows to the current transaction. The caller owns the
commit so the reward lands atomically with the event that triggered it.
"""
import logging
import uuid

from ..extensions import db
from ..models.reward import Reward

logger = logging.getLogger(__name__)

REWARD_CODE_PREFIX = 'PREMIO'
COUPON_CODE_PREFIX = 'CUPON'
CODE_SUFFIX_LENGTH = 8
MAX_CODE_ATTEMPTS = 5


def generate_code(prefix: str) -> str:
    """e.g. PREMIO-3F9A1C0B"""
    return f'{prefix}-{uuid.uuid4().hex[:CODE_SUFFIX_LENGTH].upper()}'


class RewardIssuer:
    """
    Usage:
        issuer = RewardIssuer()
        reward = issuer.issue(customer_id, tenant_id, program_id, 'Café gratis')
        db.session.commit()
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def _unique_code(self, prefix: str) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_code(prefix)
            taken = self.session.query(Reward.id).filter_by(code=code).first()
            if not taken:
                return code
            logger.warning(f'Reward code collision on {code}, regenerating')
        # The unique constraint still guards the insert
        return generate_code(prefix)

    def issue(
        self,
        customer_id: int,
        tenant_id: int,
        program_id: int,
        description: str,
        prefix: str = REWARD_CODE_PREFIX
    ) -> Reward:
        """Add a Reward to the session and flush it. Does not commit."""
        reward = Reward(
            customer_id=customer_id,
            tenant_id=tenant_id,
            program_id=program_id,
            code=self._unique_code(prefix),
            description=description,
        )
        self.session.add(reward)
        self.session.flush()

        logger.info(f'Reward {reward.code} issued to customer {customer_id} (tenant {tenant_id})')
        return reward
