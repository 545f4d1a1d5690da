"""Core del monitor de cuna: ingesta → alertas → almacenamiento → tendencias.

Punto de entrada del servicio: ``monitor_api.pipeline.MonitorService``.
"""
