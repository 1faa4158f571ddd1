"""
Circuit breaker and health registry for the AI providers.
"""

import time
import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional
from dataclasses import dataclass, field, fields, asdict

from ..logging_system import get_structured_logger, ErrorClassifier, FallbackStage
from .config import CircuitBreakerConfig, ResilienceConfig, validate_breaker_settings
from .errors import ConfigurationError

STATE_HISTORY_LIMIT = 100
BREAKER_SETTINGS = tuple(f.name for f in fields(CircuitBreakerConfig))


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, requests rejected
    HALF_OPEN = "half_open"  # Probing whether the service recovered


@dataclass
class StateTransition:
    """One entry of a breaker's state history."""
    state: CircuitState
    timestamp: float
    previous_state: CircuitState

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'timestamp': self.timestamp,
            'previous_state': self.previous_state.value
        }


@dataclass
class CircuitStats:
    """Circuit breaker statistics."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    last_state_change: float = field(default_factory=lambda: time.time())
    state_history: Deque[StateTransition] = field(
        default_factory=lambda: deque(maxlen=STATE_HISTORY_LIMIT))


class CircuitBreaker:
    """
    Per-service circuit breaker with health tracking.

    Failures accumulate in ``failure_count``; reaching ``failure_threshold``
    opens the circuit. After ``recovery_timeout`` seconds without a new failure
    the circuit admits a half-open probe, either on the next ``is_healthy()``
    call or from the auto-recovery timer. A success while half-open closes the
    circuit. Successes outside half-open only decrement ``failure_count`` by
    one, so a flapping service keeps part of its failure count.

    Entering half-open keeps ``failure_count``; a failed probe therefore
    reopens the circuit immediately when the count is still at threshold.
    """

    def __init__(self,
                 service_name: str,
                 failure_threshold: int = 3,
                 recovery_timeout: float = 60.0,
                 monitoring_period: float = 300.0,
                 auto_recovery: bool = True,
                 logger=None):
        """
        Initialize circuit breaker.

        Args:
            service_name: Unique identifier for the guarded service
            failure_threshold: Failures that open the circuit
            recovery_timeout: Seconds to stay open before admitting a probe
            monitoring_period: Reporting window in seconds, informational only
            auto_recovery: Start the background recovery timer right away
            logger: Structured logger instance

        Raises:
            ConfigurationError: If threshold or timeouts are invalid
        """
        issues = validate_breaker_settings("", failure_threshold, recovery_timeout, monitoring_period)
        if issues:
            raise ConfigurationError(f"Invalid circuit breaker '{service_name}': {'; '.join(issues)}")

        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = float(recovery_timeout)
        self.monitoring_period = float(monitoring_period)

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.last_success_time: Optional[float] = None
        self.stats = CircuitStats()

        self._lock = threading.RLock()
        self._recovery_stop: Optional[threading.Event] = None
        self._recovery_thread: Optional[threading.Thread] = None
        self.logger = logger or get_structured_logger("circuit_breaker")

        if auto_recovery:
            self.start_auto_recovery()

    def mark_success(self):
        """Record a successful call."""
        with self._lock:
            self.stats.total_requests += 1
            self.stats.successful_requests += 1
            self.stats.consecutive_successes += 1
            self.stats.consecutive_failures = 0
            self.last_success_time = time.time()

            if self.state == CircuitState.HALF_OPEN:
                self.failure_count = 0
                self._set_state(CircuitState.CLOSED)
                self.logger.info(f"Circuit breaker CLOSED for {self.service_name} after successful recovery",
                                 stage=FallbackStage.HEALTH,
                                 structured_data={'service': self.service_name})
            elif self.failure_count > 0:
                self.failure_count -= 1

            self.logger.debug(f"Health check success for {self.service_name}",
                              structured_data={
                                  'service': self.service_name,
                                  'state': self.state.value,
                                  'failure_count': self.failure_count,
                                  'consecutive_successes': self.stats.consecutive_successes
                              })

    def mark_failure(self, error: Optional[BaseException] = None):
        """Record a failed call, opening the circuit at the threshold."""
        with self._lock:
            self.stats.total_requests += 1
            self.stats.failed_requests += 1
            self.stats.consecutive_failures += 1
            self.stats.consecutive_successes = 0
            self.failure_count += 1
            self.last_failure_time = time.time()

            error_message = str(error) if error is not None else 'Unknown error'
            error_category = ErrorClassifier.classify_error(error)

            if self.failure_count >= self.failure_threshold and self.state != CircuitState.OPEN:
                self._set_state(CircuitState.OPEN)
                self.logger.warning(f"Circuit breaker OPEN for {self.service_name} after {self.failure_count} failures",
                                    stage=FallbackStage.HEALTH,
                                    error_category=error_category,
                                    structured_data={
                                        'service': self.service_name,
                                        'recovery_timeout': self.recovery_timeout,
                                        'error': error_message
                                    })

            self.logger.warning(f"Health check failure for {self.service_name}",
                                error_category=error_category,
                                structured_data={
                                    'service': self.service_name,
                                    'state': self.state.value,
                                    'failure_count': self.failure_count,
                                    'failure_threshold': self.failure_threshold,
                                    'consecutive_failures': self.stats.consecutive_failures,
                                    'error': error_message
                                })

    def is_healthy(self) -> bool:
        """
        Check whether calls may go through.

        An open circuit whose recovery timeout has elapsed moves to half-open
        and admits the caller as its probe.
        """
        with self._lock:
            if self.state == CircuitState.OPEN:
                if self._recovery_elapsed():
                    self._set_state(CircuitState.HALF_OPEN)
                    self.logger.info(f"Circuit breaker moved to HALF_OPEN for {self.service_name}",
                                     stage=FallbackStage.HEALTH,
                                     structured_data={'service': self.service_name})
                    return True
                return False

            return True

    def _recovery_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        return (time.time() - self.last_failure_time) >= self.recovery_timeout

    def _set_state(self, new_state: CircuitState):
        """Transition and append to the bounded state history."""
        previous_state = self.state
        now = time.time()
        self.state = new_state
        self.stats.last_state_change = now
        self.stats.state_history.append(StateTransition(
            state=new_state,
            timestamp=now,
            previous_state=previous_state
        ))

    def get_success_rate(self) -> str:
        """Success rate formatted with two decimals, '0.00%' before any request."""
        with self._lock:
            if self.stats.total_requests == 0:
                return "0.00%"
            rate = self.stats.successful_requests / self.stats.total_requests * 100
            return f"{rate:.2f}%"

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the breaker's state, counters and configuration."""
        with self._lock:
            healthy = self.is_healthy()
            uptime = time.time() - self.stats.last_state_change

            return {
                'service': self.service_name,
                'state': self.state.value,
                'healthy': healthy,
                'failure_count': self.failure_count,
                'failure_threshold': self.failure_threshold,
                'last_failure_time': self.last_failure_time,
                'last_success_time': self.last_success_time,
                'uptime': f"{int(uptime)}s",
                'stats': {
                    'total_requests': self.stats.total_requests,
                    'successful_requests': self.stats.successful_requests,
                    'failed_requests': self.stats.failed_requests,
                    'consecutive_failures': self.stats.consecutive_failures,
                    'consecutive_successes': self.stats.consecutive_successes,
                    'last_state_change': self.stats.last_state_change,
                    'state_changes': len(self.stats.state_history),
                    'success_rate': self.get_success_rate()
                },
                'config': {
                    'recovery_timeout': f"{self.recovery_timeout:g}s",
                    'monitoring_period': f"{self.monitoring_period:g}s"
                }
            }

    def get_health_report(self) -> Dict[str, Any]:
        """Status plus operator recommendations."""
        status = self.get_status()
        recommendations = []

        if status['state'] == CircuitState.OPEN.value:
            recommendations.append('Circuit is open - requests are being blocked')
            recommendations.append(
                f"Wait for recovery timeout ({status['config']['recovery_timeout']}) before retrying")
        elif status['state'] == CircuitState.HALF_OPEN.value:
            recommendations.append('Circuit is half-open - testing service recovery')
            recommendations.append('Next successful request will close the circuit')

        if float(status['stats']['success_rate'].rstrip('%')) < 50:
            recommendations.append('Low success rate detected - consider reviewing service configuration')

        if status['stats']['consecutive_failures'] > 5:
            recommendations.append('High consecutive failures - service may be unavailable')

        status['recommendations'] = recommendations
        return status

    def get_state_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent state transitions, oldest first."""
        with self._lock:
            history = list(self.stats.state_history)
        if limit <= 0:
            return []
        return [entry.to_dict() for entry in history[-limit:]]

    def get_stats_summary(self) -> Dict[str, Any]:
        with self._lock:
            now = time.time()
            total = self.stats.total_requests
            return {
                'service': self.service_name,
                'total_requests': total,
                'successful_requests': self.stats.successful_requests,
                'failed_requests': self.stats.failed_requests,
                'success_rate': (f"{self.stats.successful_requests / total * 100:.2f}%"
                                 if total > 0 else '0%'),
                'consecutive_failures': self.stats.consecutive_failures,
                'consecutive_successes': self.stats.consecutive_successes,
                'current_state': self.state.value,
                'time_since_last_success': (f"{int(now - self.last_success_time)}s ago"
                                            if self.last_success_time else 'never'),
                'time_since_last_failure': (f"{int(now - self.last_failure_time)}s ago"
                                            if self.last_failure_time else 'never')
            }

    def reset(self):
        """Force the circuit closed and clear failure tracking."""
        with self._lock:
            previous_state = self.state
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.last_failure_time = None
            self.stats.consecutive_failures = 0

            self.logger.info(f"Circuit breaker reset for {self.service_name}",
                             stage=FallbackStage.HEALTH,
                             structured_data={
                                 'service': self.service_name,
                                 'previous_state': previous_state.value,
                                 'new_state': self.state.value
                             })

    def start_auto_recovery(self):
        """Start (or restart) the background timer moving OPEN to HALF_OPEN."""
        self.stop_auto_recovery()

        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._auto_recovery_loop,
            args=(stop_event,),
            daemon=True,
            name=f"circuit_recovery_{self.service_name}"
        )
        with self._lock:
            self._recovery_stop = stop_event
            self._recovery_thread = thread
        thread.start()

    def stop_auto_recovery(self):
        """Stop the background timer. Safe to call repeatedly."""
        with self._lock:
            stop_event = self._recovery_stop
            thread = self._recovery_thread
            self._recovery_stop = None
            self._recovery_thread = None

        if stop_event is None:
            return

        stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)

        self.logger.info(f"Auto-recovery stopped for {self.service_name}",
                         structured_data={'service': self.service_name})

    @property
    def auto_recovery_running(self) -> bool:
        with self._lock:
            return self._recovery_thread is not None and self._recovery_thread.is_alive()

    def _auto_recovery_loop(self, stop_event: threading.Event):
        """Check twice per recovery timeout until stopped."""
        interval = self.recovery_timeout / 2
        while not stop_event.wait(interval):
            with self._lock:
                if self.state == CircuitState.OPEN and self._recovery_elapsed():
                    self._set_state(CircuitState.HALF_OPEN)
                    self.logger.info(f"Auto-recovery: Circuit breaker moved to HALF_OPEN for {self.service_name}",
                                     stage=FallbackStage.HEALTH,
                                     structured_data={'service': self.service_name})


class HealthRegistry:
    """
    Named collection of circuit breakers with fleet-wide health reporting.
    """

    def __init__(self, logger=None):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()
        self.logger = logger or get_structured_logger("health_registry")

    def register(self,
                 name: str,
                 config: Optional[CircuitBreakerConfig] = None,
                 **options) -> CircuitBreaker:
        """
        Get the breaker registered under name, creating it on first use.

        Args:
            name: Service name
            config: Breaker settings; keyword options override its fields
            **options: CircuitBreaker parameters

        Returns:
            CircuitBreaker instance. Settings are ignored once the name exists.

        Raises:
            ConfigurationError: If an option is not a breaker setting
        """
        with self._lock:
            if name in self._breakers:
                return self._breakers[name]

            logger = options.pop('logger', None) or self.logger
            unknown = sorted(set(options) - set(BREAKER_SETTINGS))
            if unknown:
                raise ConfigurationError(
                    f"Unknown circuit breaker option(s) for '{name}': {', '.join(unknown)}")

            settings = asdict(config) if config is not None else {}
            settings.update(options)
            breaker = CircuitBreaker(service_name=name, logger=logger, **settings)
            self._breakers[name] = breaker

            self.logger.info(f"Registered health checker for {name}",
                             stage=FallbackStage.HEALTH,
                             structured_data={
                                 'service': name,
                                 'failure_threshold': breaker.failure_threshold,
                                 'recovery_timeout': breaker.recovery_timeout,
                                 'monitoring_period': breaker.monitoring_period
                             })
            return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        with self._lock:
            return self._breakers.get(name)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._breakers

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)

    def mark_success(self, name: str):
        breaker = self.get(name)
        if breaker:
            breaker.mark_success()

    def mark_failure(self, name: str, error: Optional[BaseException] = None):
        breaker = self.get(name)
        if breaker:
            breaker.mark_failure(error)

    def is_healthy(self, name: str) -> bool:
        """Unregistered services are never healthy."""
        breaker = self.get(name)
        return breaker.is_healthy() if breaker else False

    def _snapshot(self) -> List[CircuitBreaker]:
        with self._lock:
            return list(self._breakers.values())

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        return {breaker.service_name: breaker.get_status() for breaker in self._snapshot()}

    def get_all_health_reports(self) -> Dict[str, Dict[str, Any]]:
        return {breaker.service_name: breaker.get_health_report() for breaker in self._snapshot()}

    def get_overall_health(self) -> Dict[str, Any]:
        """Percentage of healthy services plus per-service status."""
        statuses = self.get_all_status()
        healthy_count = sum(1 for status in statuses.values() if status['healthy'])
        total = len(statuses)
        overall = f"{healthy_count / total * 100:.2f}" if total > 0 else '0'

        return {
            'overall_health': f"{overall}%",
            'healthy_services': healthy_count,
            'total_services': total,
            'services': statuses,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    def reset_all(self):
        """Reset all circuit breakers."""
        for breaker in self._snapshot():
            breaker.reset()
        self.logger.info("Reset all circuit breakers", stage=FallbackStage.HEALTH)

    def stop_all(self):
        """Stop every breaker's auto-recovery timer."""
        for breaker in self._snapshot():
            breaker.stop_auto_recovery()

    def get_unhealthy_services(self) -> List[str]:
        """Names of services whose circuit is currently open."""
        return [breaker.service_name for breaker in self._snapshot()
                if breaker.state == CircuitState.OPEN]


def build_default_registry(config: Optional[ResilienceConfig] = None,
                           logger=None) -> HealthRegistry:
    """
    Create the registry used at the composition root, with the primary and
    secondary providers registered.
    """
    config = config or ResilienceConfig()
    registry = HealthRegistry(logger=logger)
    registry.register(config.fallback.primary_service, config.primary)
    registry.register(config.fallback.secondary_service, config.secondary)
    return registry
