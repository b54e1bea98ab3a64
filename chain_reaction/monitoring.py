# chain_reaction/monitoring.py
import errno
import logging
import threading
import time
from socketserver import ThreadingMixIn
from wsgiref.simple_server import make_server, WSGIServer, WSGIRequestHandler

import psutil
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app

logger = logging.getLogger(__name__)

BIND_ATTEMPTS = 5
BIND_RETRY_SECONDS = 2


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Serves each scrape on its own daemon thread."""
    allow_reuse_address = True
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        logger.debug("metrics scrape: " + format % args)


class Monitor:
    """Prometheus metrics for one game instance. The HTTP server is opt-in."""

    def __init__(self, host="127.0.0.1", port=9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Own registry: two games in one process must not collide.
        self.registry = CollectorRegistry()
        r = self.registry

        self.op_counter = Counter('chain_operations_total', 'Operations processed', ['op_type', 'status'], registry=r)
        self.op_latency = Histogram('chain_operation_latency_seconds', 'Time to process an operation', ['op_type'], registry=r)
        self.chain_id = Gauge('chain_id', 'Current chain id', registry=r)
        self.active = Gauge('chain_active', '1 while a chain is running', registry=r)
        self.pot = Gauge('chain_pot', 'Pot of the running chain', registry=r)
        self.boost = Gauge('chain_boost_amount', 'Boost of the running chain', registry=r)
        self.burned = Gauge('chain_burned_amount', 'Burned in the running chain', registry=r)
        self.player_count = Gauge('chain_player_count', 'Plays in the running chain', registry=r)
        self.next_entry_price = Gauge('chain_next_entry_price', 'Fee required for the next join', registry=r)
        self.payouts = Counter('chain_payouts_total', 'Sum of all payouts', registry=r)
        self.process_cpu = Gauge('chain_process_cpu_percent', 'CPU used by this process', registry=r)
        self.process_rss = Gauge('chain_process_rss_bytes', 'Resident memory of this process', registry=r)
        self._process = psutil.Process()

    def start_server(self):
        """Serve /metrics on a background thread, retrying while the port is taken."""
        app = make_wsgi_app(self.registry)
        for attempt in range(1, BIND_ATTEMPTS + 1):
            try:
                self.server = make_server(self.host, self.port, app,
                                          ThreadingWSGIServer, handler_class=_QuietHandler)
                break
            except OSError as e:
                if e.errno != errno.EADDRINUSE or attempt == BIND_ATTEMPTS:
                    logger.error(f"Metrics server cannot bind {self.host}:{self.port}: {e}")
                    raise
                logger.warning(f"Port {self.port} busy, attempt {attempt}/{BIND_ATTEMPTS}; retrying")
                time.sleep(BIND_RETRY_SECONDS)

        self.thread = threading.Thread(target=self.server.serve_forever, name="metrics", daemon=True)
        self.thread.start()
        logger.info(f"Metrics at http://{self.host}:{self.port}/metrics")

    def stop_server(self):
        if self.server is None:
            return
        self.server.shutdown()
        self.server.server_close()
        self.server = None
        logger.info("Metrics server stopped")

    def update(self, state, next_entry_price: int):
        """Refresh gauges from a committed state snapshot."""
        self.chain_id.set(state.chain_id)
        self.active.set(1 if state.is_active else 0)
        self.pot.set(state.pot)
        self.boost.set(state.boost_amount)
        self.burned.set(state.burned_amount)
        self.player_count.set(state.player_count)
        self.next_entry_price.set(next_entry_price)

        self.process_cpu.set(self._process.cpu_percent())
        self.process_rss.set(self._process.memory_info().rss)

    def record_operation(self, op_type: str, status: str, latency: float):
        self.op_counter.labels(op_type=op_type, status=status).inc()
        self.op_latency.labels(op_type=op_type).observe(latency)

    def record_payout(self, amount: int):
        self.payouts.inc(amount)
