"""
Monitor daemon package for the SolarAssistant battery monitor.

Subscribes to SolarAssistant telemetry over MQTT, keeps a real-time cache and
a throttled one-year archive, derives daily energy statistics, raises battery
alerts and drives the external battery charger through IFTTT webhooks.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""
