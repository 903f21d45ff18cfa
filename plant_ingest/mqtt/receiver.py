"""Receptor MQTT principal.

Usa paho-mqtt para suscribirse a ``plants/+/telemetry`` con QoS 1 y
entrega cada mensaje al message handler.

Delivery is at-least-once: a persistent session (``clean_session=False``
with a stable client id) lets the broker redeliver unacknowledged
messages after a reconnect. Reconnection itself is left to paho.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import paho.mqtt.client as mqtt

from ..common.config import MqttEndpoint
from ..metrics import RECEIVER_CONNECTED
from .message_handler import Submit, handle_message
from .receiver_stats import ReceiverStats
from .topics import TopicPattern

logger = logging.getLogger(__name__)


class TelemetryReceiver:
    """Suscriptor MQTT de telemetría."""

    def __init__(
        self,
        endpoint: MqttEndpoint,
        submit: Submit,
        stats: Optional[ReceiverStats] = None,
        topic: str = "plants/+/telemetry",
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "plant-ingest",
        qos: int = 1,
        keepalive: int = 60,
        client: Optional[mqtt.Client] = None,
    ):
        self.endpoint = endpoint
        self.pattern = TopicPattern(topic)
        self.qos = qos
        self.keepalive = keepalive
        self.stats = stats or ReceiverStats()
        self._submit = submit
        self._connected = threading.Event()
        self._running = False
        self._reconnect_count = 0
        self._ever_connected = False

        if client is None:
            client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=client_id,
                clean_session=False,
                protocol=mqtt.MQTTv311,
            )
            if username:
                client.username_pw_set(username, password)
            if endpoint.tls:
                client.tls_set()
            client.reconnect_delay_set(min_delay=1, max_delay=30)

        self._client = client
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_subscribe = self._on_subscribe
        self._client.on_message = self._on_message

    def start(self, timeout: float = 10.0) -> bool:
        """Connect and start the network loop; False if not connected within ``timeout``.

        Connection errors at boot (DNS, refused) propagate as OSError.
        """
        logger.info("[MQTT] Connecting to %s:%d", self.endpoint.host, self.endpoint.port)
        self._client.connect(self.endpoint.host, self.endpoint.port, keepalive=self.keepalive)
        self._client.loop_start()
        self._running = True

        if self._connected.wait(timeout):
            logger.info("[MQTT] Started successfully")
            return True
        logger.error("[MQTT] Connection timeout after %.1fs", timeout)
        return False

    def stop(self) -> None:
        self._running = False
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.warning("[MQTT] Error stopping: %s", e)
        self._connected.clear()
        RECEIVER_CONNECTED.set(0)
        logger.info("[MQTT] Stopped. %s", self.stats)

    # -- paho callbacks (network loop thread) --------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("[MQTT] Connection failed: %s", reason_code)
            return
        if self._ever_connected:
            self._reconnect_count += 1
        self._ever_connected = True
        self._connected.set()
        RECEIVER_CONNECTED.set(1)
        logger.info("[MQTT] Connected to broker (session_present=%s)", flags.session_present)
        # Re-suscribir en cada conexión
        client.subscribe(self.pattern.pattern, qos=self.qos)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        for rc in reason_code_list:
            if rc.is_failure:
                logger.error("[MQTT] Subscribe error on %s: %s", self.pattern.pattern, rc)
            else:
                logger.info("[MQTT] Subscribed to %s (qos=%s)", self.pattern.pattern, rc.value)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        self._connected.clear()
        RECEIVER_CONNECTED.set(0)
        if self._running:
            logger.warning("[MQTT] Disconnected (%s), paho will reconnect", reason_code)

    def _on_message(self, client, userdata, msg):
        try:
            handle_message(msg.topic, msg.payload, self.pattern, self.stats, self._submit)
        except Exception as e:
            # Nunca dejar que una excepción mate el loop de paho
            logger.exception("[MQTT] message handler error: %s", e)
            self.stats.incr("failed")

    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def health_check(self) -> dict:
        return {
            "running": self._running,
            "connected": self.is_connected,
            "broker": f"{self.endpoint.host}:{self.endpoint.port}",
            "topic": self.pattern.pattern,
            "reconnect_count": self._reconnect_count,
            **self.stats.to_dict(),
        }
