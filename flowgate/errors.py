"""파이프라인 전 구간에서 사용하는 예외 계층."""

from __future__ import annotations


class FlowgateError(Exception):
    """flowgate 예외의 기반 클래스."""


class DecodeError(FlowgateError, ValueError):
    """익스포터 JSON 한 줄을 FlowRecord로 변환하지 못함."""


class ClassificationAmbiguous(FlowgateError):
    """주소가 아닌 값이 분류기에 도달함 (디코더를 거쳤다면 발생하지 않는다)."""


class DeliveryError(FlowgateError):
    """스토리지 쓰기 실패의 기반 클래스. HTTP 응답이 있었다면 status를 보존한다."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DeliveryTransientError(DeliveryError):
    """재시도로 회복 가능한 실패 (타임아웃, 연결 오류, 5xx, 429)."""


class DeliveryPermanentError(DeliveryError):
    """재시도해도 회복되지 않는 실패 (잘못된 요청, 인증 실패)."""


class BufferOverflow(FlowgateError):
    """버퍼가 하드 상한을 넘어 가장 오래된 레코드를 버림."""

    def __init__(self, dropped: int) -> None:
        super().__init__(f"buffer hard ceiling exceeded, dropped {dropped} oldest records")
        self.dropped = dropped
