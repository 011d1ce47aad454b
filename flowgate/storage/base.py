"""스토리지 백엔드 쓰기 인터페이스."""

from __future__ import annotations

import abc
from typing import Sequence

from flowgate.storage.points import Point


class PointWriter(abc.ABC):
    """포인트 묶음을 한 번의 호출로 기록하는 백엔드의 기본 클래스.

    구현체는 실패를 DeliveryTransientError(재시도 가능) 또는
    DeliveryPermanentError(재시도 불가)로 분류해서 던져야 한다.
    """

    name: str = ""

    async def start(self) -> None:
        """커넥션 등 리소스를 준비한다."""

    @abc.abstractmethod
    async def bulk_write(self, points: Sequence[Point]) -> None:
        """포인트 전체를 한 번에 기록한다. 성공하면 배치 전체가 확인된 것으로 본다."""

    async def close(self) -> None:
        """리소스를 해제한다."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
