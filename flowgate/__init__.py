"""flowgate - goflow2 플로우 레코드 분류 및 InfluxDB 전송 파이프라인."""

__version__ = "0.1.0"
