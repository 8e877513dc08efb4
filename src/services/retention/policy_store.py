"""Per-topic retention policy store."""

from __future__ import annotations

from collections.abc import Iterable

from schemas.retention import (
    DISABLED_POLICY,
    PolicyRecord,
    RetentionPolicy,
    TopicKey,
)


class PolicyStore:
    """Mapping of topic to retention policy.

    An all-zero policy is never stored; absence means "disabled".
    """

    def __init__(self) -> None:
        self._policies: dict[TopicKey, RetentionPolicy] = {}

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, key: object) -> bool:
        return key in self._policies

    def get_policy(self, key: TopicKey) -> RetentionPolicy | None:
        return self._policies.get(key)

    def set_policy(
        self,
        key: TopicKey,
        minutes: int | None = None,
        max_messages: int | None = None,
    ) -> RetentionPolicy:
        """Update the fields that were supplied and return the effective policy."""
        current = self._policies.get(key, DISABLED_POLICY)
        updated = RetentionPolicy(
            minutes=current.minutes if minutes is None else minutes,
            max_messages=current.max_messages if max_messages is None else max_messages,
        )

        if updated.is_disabled:
            self._policies.pop(key, None)
        else:
            self._policies[key] = updated
        return updated

    def items(self) -> list[tuple[TopicKey, RetentionPolicy]]:
        return sorted(
            self._policies.items(), key=lambda kv: (kv[0].chat_id, kv[0].thread_id)
        )

    def to_records(self) -> list[PolicyRecord]:
        return [
            PolicyRecord(
                chat_id=key.chat_id,
                thread_id=key.thread_id,
                minutes=policy.minutes,
                max_messages=policy.max_messages,
            )
            for key, policy in self.items()
        ]

    def load(self, records: Iterable[PolicyRecord]) -> None:
        self._policies.clear()
        for record in records:
            if record.policy.is_disabled:
                continue
            self._policies[record.key] = record.policy
