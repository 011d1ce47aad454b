"""메인 애플리케이션: 설정, 로깅, 소스, 스토리지, 파이프라인, 상태 서버 통합 관리."""

from __future__ import annotations

import asyncio
import logging
import signal

from flowgate.ingest.base import LineSource
from flowgate.ingest.file import FileLineSource
from flowgate.ingest.tcp import TCPLineSource
from flowgate.ingest.udp import UDPLineSource
from flowgate.pipeline.observer import PipelineObserver
from flowgate.pipeline.orchestrator import PipelineOrchestrator
from flowgate.pipeline.settings import PipelineSettings
from flowgate.services.stats_report import StatsReporter
from flowgate.storage.influxdb import InfluxDBWriter
from flowgate.storage.points import DEFAULT_MEASUREMENT
from flowgate.utils.config import Config
from flowgate.utils.logging_setup import setup_logging
from flowgate.web.server import create_app

logger = logging.getLogger("flowgate.app")


def build_source(config: Config) -> LineSource:
    """input 섹션의 type에 맞는 라인 소스를 만든다."""
    input_cfg  = config.section("input")
    kind       = input_cfg.get("type", "stdin")
    queue_size = int(input_cfg.get("queue_size", 10000))

    if kind == "stdin":
        return FileLineSource("-")
    if kind == "file":
        return FileLineSource(input_cfg.get("path", "-"))
    if kind == "udp":
        return UDPLineSource(
            host       = input_cfg.get("host", "0.0.0.0"),
            port       = int(input_cfg.get("port", 2056)),
            queue_size = queue_size,
        )
    if kind == "tcp":
        return TCPLineSource(
            host       = input_cfg.get("host", "0.0.0.0"),
            port       = int(input_cfg.get("port", 2057)),
            queue_size = queue_size,
        )
    raise ValueError(f"Unknown input type: {kind!r}")


class FlowGate:
    """최상위 애플리케이션 객체.

    관찰자를 한 번 생성해 모든 컴포넌트에 주입하고,
    시작 순서 제어와 시그널 기반 정상 종료만 담당한다.
    """

    def __init__(self, config: Config) -> None:
        setup_logging(config)
        self.config   = config
        self.observer = PipelineObserver()
        self.settings = PipelineSettings.from_config(config)
        self.source   = build_source(config)
        self.writer   = InfluxDBWriter.from_config(config.section("influxdb"))
        self.orchestrator = PipelineOrchestrator(
            settings    = self.settings,
            source      = self.source,
            writer      = self.writer,
            observer    = self.observer,
            measurement = config.get("influxdb.measurement", DEFAULT_MEASUREMENT),
        )
        self.reporter = StatsReporter(
            observer     = self.observer,
            orchestrator = self.orchestrator,
            interval     = float(config.get("logging.stats_interval_seconds", 60)),
        )

    async def run(self) -> None:
        """메인 진입점: 파이프라인이 끝날 때까지 실행한다."""
        loop = asyncio.get_running_loop()

        logger.info("flowgate starting...")
        logger.info(
            "Private ranges: %s; IPv6 private ranges: %s",
            list(self.settings.private_ranges),
            list(self.settings.private_v6_ranges) or "none (all IPv6 treated as WAN)",
        )

        # ── 시그널 처리 ─────────────────────────────────────────────────
        def _signal_handler() -> None:
            logger.info("Shutdown signal received")
            self.orchestrator.request_stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

        # ── 상태 서버 (선택) ─────────────────────────────────────────────
        server = None
        server_task: asyncio.Task | None = None
        if self.config.get("web.enabled", False):
            import uvicorn
            web_host = self.config.get("web.host", "127.0.0.1")
            web_port = self.config.get("web.port", 38586)
            app = create_app(self.orchestrator, enable_docs=self.config.get("web.enable_docs", False))
            server = uvicorn.Server(uvicorn.Config(
                app, host=web_host, port=web_port,
                log_level="warning", loop="none",
            ))
            server_task = asyncio.create_task(server.serve())
            logger.info("Status server on http://%s:%d", web_host, web_port)

        await self.reporter.start()

        try:
            await self.orchestrator.run()
        finally:
            # ── 종료 ──────────────────────────────────────────────────────
            logger.info("Shutting down...")
            await self.reporter.stop()
            if server is not None and server_task is not None:
                server.should_exit = True
                await server_task
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            logger.info("flowgate stopped")
