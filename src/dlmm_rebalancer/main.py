"""
DLMM Rebalancer - Main Entry Point

Keeps one liquidity position in a bin-based AMM pool centered on the active
price: withdraws it when the active bin leaves its range, rebalances the two
tokens to equal value, and opens a new position around the current bin.

Usage:
    python -m dlmm_rebalancer.main [--dry-run | --live] [--max-ticks N]
    dlmm-rebalancer --live --env-file /etc/dlmm-rebalancer.env

Configuration:
    The bot reads configuration from:
    1. Environment variables
    2. A .env file (values already in the environment win)
    3. Command line arguments

Environment Variables:
    WALLET_PRIVATE_KEY        Wallet secret, base58 or JSON byte array (live)
    RPC_URL                   Solana RPC endpoint
    COMMITMENT                processed / confirmed / finalized (default: confirmed)
    POOL_ADDRESS              Pool to manage (default: JLP/USDC)
    TOKEN_A_MINT              Token A mint (default: JLP)
    TOKEN_B_MINT              Token B mint (default: USDC)
    POOL_ADAPTER              Registered adapter name or module:factory (live)
    BIN_RANGE_HALF_WIDTH      Bins on each side of the active bin (default: 10)
    STRATEGY_KIND             spot_balanced / spot_imbalanced / curve / bid_ask
    POSITION_SLIPPAGE         Create-position slippage (default: 0.02)
    SWAP_SLIPPAGE_BPS         Rebalance swap slippage (default: 100)
    MIN_GAS_BALANCE           SOL required before acting (default: 0.1)
    POLL_INTERVAL_SECONDS     Tick interval (default: 5)
    <OP>_MAX_ATTEMPTS         Retry bound per operation: SWAP, CREATE, REMOVE, QUERY
    <OP>_RETRY_DELAY_SECONDS  Delay between attempts per operation
    REDISCOVER_BEFORE_CREATE  Adopt an existing position before creating (default: true)
    SWAP_API_URL              Swap aggregator base URL
    DRY_RUN                   Set to "true" for paper trading (default: true)
    PAPER_BALANCE_A/B         Paper token balances in UI units (default: 100)
    PAPER_NATIVE_BALANCE      Paper SOL balance (default: 1)
    PAPER_PRICE               Paper price of token A in token B (default: 1)
    TELEGRAM_BOT_TOKEN        Telegram bot token for alerts
    TELEGRAM_CHAT_ID          Telegram chat ID for alerts
    LOG_LEVEL                 Logging level (DEBUG/INFO/WARNING/ERROR)
    PID_FILE                  Singleton lock file

Live Mode Requirements:
    When DRY_RUN=false, the bot requires WALLET_PRIVATE_KEY, POOL_ADAPTER and
    a reachable RPC endpoint. It fails fast (exit code 1) if any is missing.
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import fcntl
import logging
import os
import signal
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Generator, List, Optional

from solders.keypair import Keypair

from dlmm_rebalancer.chain import (
    LAMPORTS_PER_SOL,
    ConfigurationError,
    SolanaChainClient,
    load_keypair,
    parse_commitment,
)
from dlmm_rebalancer.execution import (
    BalanceTracker,
    Clock,
    ManagedState,
    PositionManager,
    PositionManagerConfig,
    RetryPolicy,
    StartupError,
)
from dlmm_rebalancer.monitoring import AlertManager
from dlmm_rebalancer.paper import (
    PAPER_ADAPTER_NAME,
    PaperChainClient,
    PaperLedger,
    PaperSwapClient,
    paper_adapter_factory,
)
from dlmm_rebalancer.pool import AdapterNotFoundError, StrategyKind, get_default_registry
from dlmm_rebalancer.swap import JupiterSwapClient

# Configure logging before anything logs
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_PID_FILE = "/tmp/dlmm-rebalancer.pid"

# JLP/USDC pool
DEFAULT_POOL_ADDRESS = "DbTk2SNKWxu9TJbPzmK9HcQCAmraBCFb5VMo8Svwh34z"
DEFAULT_TOKEN_A_MINT = "27G8MtK7VtTcCHkpASjSDdkWWYfoqT6ggEuKidVJidD4"  # JLP
DEFAULT_TOKEN_B_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"  # USDC
DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"

# Both default tokens use 6 decimals
PAPER_TOKEN_DECIMALS = 6


class SingletonBotError(Exception):
    """Raised when another bot instance is already running."""
    pass


@contextmanager
def singleton_lock(pid_file: str = DEFAULT_PID_FILE) -> Generator[None, None, None]:
    """
    Context manager that ensures only one bot instance runs at a time.

    Two loops managing the same wallet would each open a position.

    Raises:
        SingletonBotError: If another instance is already running
    """
    pid_path = Path(pid_file)

    # Read existing PID before opening (which would truncate)
    existing_pid = None
    try:
        existing_pid = pid_path.read_text().strip()
    except FileNotFoundError:
        pass

    # "a+" so the file is not truncated before we hold the lock
    fp = open(pid_path, "a+")

    try:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        fp.close()
        if existing_pid:
            raise SingletonBotError(
                f"Another bot instance is already running (PID: {existing_pid}). "
                f"Kill it with: kill {existing_pid}"
            )
        raise SingletonBotError(
            "Another bot instance is already running. "
            "Check for existing processes: ps aux | grep dlmm"
        )

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()

    def cleanup():
        if fp.closed:
            return
        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
            fp.close()
            pid_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to release singleton lock: {e}")

    atexit.register(cleanup)

    try:
        logger.info(f"Acquired singleton lock (PID: {os.getpid()}, file: {pid_file})")
        yield
    finally:
        cleanup()
        atexit.unregister(cleanup)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("true", "1", "yes")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class BotConfig:
    """Complete bot configuration."""

    # Wallet and chain
    wallet_private_key: Optional[str] = None
    rpc_url: str = DEFAULT_RPC_URL
    commitment: str = "confirmed"

    # Pool
    pool_address: str = DEFAULT_POOL_ADDRESS
    token_a_mint: str = DEFAULT_TOKEN_A_MINT
    token_b_mint: str = DEFAULT_TOKEN_B_MINT
    pool_adapter: Optional[str] = None

    # Position shape
    bin_range_half_width: int = 10
    strategy_kind: StrategyKind = StrategyKind.SPOT_IMBALANCED
    position_slippage: Decimal = Decimal("0.02")

    # Rebalance swap
    swap_slippage_bps: int = 100
    swap_api_url: str = JupiterSwapClient.DEFAULT_BASE_URL

    # Loop
    min_gas_balance: Decimal = Decimal("0.1")
    poll_interval_seconds: float = 5.0
    rediscover_before_create: bool = True

    # Retry bounds
    swap_max_attempts: int = 3
    swap_retry_delay_seconds: float = 2.0
    create_max_attempts: int = 3
    create_retry_delay_seconds: float = 2.0
    remove_max_attempts: int = 5
    remove_retry_delay_seconds: float = 2.0
    query_max_attempts: int = 3
    query_retry_delay_seconds: float = 1.0

    # Paper trading
    dry_run: bool = True
    paper_balance_a: Decimal = Decimal("100")
    paper_balance_b: Decimal = Decimal("100")
    paper_native_balance: Decimal = Decimal("1")
    paper_price: Decimal = Decimal("1")

    # Alerts
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    # Process
    log_level: str = "INFO"
    pid_file: str = DEFAULT_PID_FILE

    @classmethod
    def from_env(cls) -> "BotConfig":
        """
        Load configuration from environment variables.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        strategy_name = os.environ.get("STRATEGY_KIND", StrategyKind.SPOT_IMBALANCED.value)
        try:
            strategy_kind = StrategyKind(strategy_name.strip().lower())
        except ValueError:
            available = ", ".join(k.value for k in StrategyKind)
            raise ConfigurationError(
                f"Unknown STRATEGY_KIND '{strategy_name}'. Available: {available}"
            ) from None

        return cls(
            wallet_private_key=os.environ.get("WALLET_PRIVATE_KEY") or None,
            rpc_url=os.environ.get("RPC_URL", DEFAULT_RPC_URL),
            commitment=os.environ.get("COMMITMENT", "confirmed"),
            pool_address=os.environ.get("POOL_ADDRESS", DEFAULT_POOL_ADDRESS),
            token_a_mint=os.environ.get("TOKEN_A_MINT", DEFAULT_TOKEN_A_MINT),
            token_b_mint=os.environ.get("TOKEN_B_MINT", DEFAULT_TOKEN_B_MINT),
            pool_adapter=os.environ.get("POOL_ADAPTER") or None,
            bin_range_half_width=_env_int("BIN_RANGE_HALF_WIDTH", "10"),
            strategy_kind=strategy_kind,
            position_slippage=_env_decimal("POSITION_SLIPPAGE", "0.02"),
            swap_slippage_bps=_env_int("SWAP_SLIPPAGE_BPS", "100"),
            swap_api_url=os.environ.get("SWAP_API_URL", JupiterSwapClient.DEFAULT_BASE_URL),
            min_gas_balance=_env_decimal("MIN_GAS_BALANCE", "0.1"),
            poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", "5"),
            rediscover_before_create=_env_bool("REDISCOVER_BEFORE_CREATE", "true"),
            swap_max_attempts=_env_int("SWAP_MAX_ATTEMPTS", "3"),
            swap_retry_delay_seconds=_env_float("SWAP_RETRY_DELAY_SECONDS", "2"),
            create_max_attempts=_env_int("CREATE_MAX_ATTEMPTS", "3"),
            create_retry_delay_seconds=_env_float("CREATE_RETRY_DELAY_SECONDS", "2"),
            remove_max_attempts=_env_int("REMOVE_MAX_ATTEMPTS", "5"),
            remove_retry_delay_seconds=_env_float("REMOVE_RETRY_DELAY_SECONDS", "2"),
            query_max_attempts=_env_int("QUERY_MAX_ATTEMPTS", "3"),
            query_retry_delay_seconds=_env_float("QUERY_RETRY_DELAY_SECONDS", "1"),
            dry_run=_env_bool("DRY_RUN", "true"),
            paper_balance_a=_env_decimal("PAPER_BALANCE_A", "100"),
            paper_balance_b=_env_decimal("PAPER_BALANCE_B", "100"),
            paper_native_balance=_env_decimal("PAPER_NATIVE_BALANCE", "1"),
            paper_price=_env_decimal("PAPER_PRICE", "1"),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN") or None,
            telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID") or None,
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            pid_file=os.environ.get("PID_FILE", DEFAULT_PID_FILE),
        )

    def validate(self) -> None:
        """
        Check the configuration before anything connects.

        Raises:
            ConfigurationError: On the first invalid or missing value
        """
        try:
            parse_commitment(self.commitment)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        if self.bin_range_half_width < 0:
            raise ConfigurationError("BIN_RANGE_HALF_WIDTH must be >= 0")
        if not 0 <= self.swap_slippage_bps <= 10_000:
            raise ConfigurationError("SWAP_SLIPPAGE_BPS must be between 0 and 10000")
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("POLL_INTERVAL_SECONDS must be > 0")
        if self.token_a_mint == self.token_b_mint:
            raise ConfigurationError("TOKEN_A_MINT and TOKEN_B_MINT must differ")

        # Surfaces invalid retry bounds as configuration errors
        try:
            self.to_manager_config()
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        if self.dry_run:
            if self.paper_price <= 0:
                raise ConfigurationError("PAPER_PRICE must be > 0")
            return

        # LIVE MODE: fail fast
        if not self.wallet_private_key:
            raise ConfigurationError("Live mode requires WALLET_PRIVATE_KEY")
        if not self.pool_adapter:
            raise ConfigurationError(
                "Live mode requires POOL_ADAPTER (registered name or module:factory)"
            )

    def to_manager_config(self) -> PositionManagerConfig:
        return PositionManagerConfig(
            range_half_width=self.bin_range_half_width,
            strategy=self.strategy_kind,
            position_slippage=self.position_slippage,
            swap_slippage_bps=self.swap_slippage_bps,
            min_gas_balance=self.min_gas_balance,
            poll_interval_seconds=self.poll_interval_seconds,
            rediscover_before_create=self.rediscover_before_create,
            swap_retry=RetryPolicy(self.swap_max_attempts, self.swap_retry_delay_seconds),
            create_retry=RetryPolicy(self.create_max_attempts, self.create_retry_delay_seconds),
            remove_retry=RetryPolicy(self.remove_max_attempts, self.remove_retry_delay_seconds),
            query_retry=RetryPolicy(self.query_max_attempts, self.query_retry_delay_seconds),
        )


class RebalancerBot:
    """
    Main bot orchestrator.

    Manages the lifecycle of all components:
    - Wallet keypair
    - Chain client (Solana RPC or paper ledger)
    - Pool adapter (from the registry)
    - Swap client (aggregator or paper)
    - Alerts
    - Position manager loop
    """

    def __init__(self, config: BotConfig, clock: Optional[Clock] = None):
        self.config = config
        self._clock = clock
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._started_at: Optional[datetime] = None

        # Components (initialized on start)
        self._keypair: Optional[Keypair] = None
        self._chain: Any = None
        self._pool: Any = None
        self._swaps: Any = None
        self._alert_manager: Optional[AlertManager] = None
        self._manager: Optional[PositionManager] = None

    @property
    def manager(self) -> Optional[PositionManager]:
        return self._manager

    @property
    def chain(self) -> Any:
        return self._chain

    async def start(self, max_ticks: Optional[int] = None) -> ManagedState:
        """
        Start the bot and run until shutdown (or max_ticks).

        Raises:
            ConfigurationError: Invalid key or adapter
            StartupError: RPC unreachable or discovery failed
        """
        logger.info("=" * 60)
        logger.info("DLMM REBALANCER")
        logger.info("=" * 60)
        logger.info(f"Mode: {'DRY RUN (paper)' if self.config.dry_run else 'LIVE'}")
        logger.info(f"Pool: {self.config.pool_address}")
        logger.info(f"Tokens: A={self.config.token_a_mint} B={self.config.token_b_mint}")
        logger.info(
            f"Range: +/-{self.config.bin_range_half_width} bins, "
            f"strategy={self.config.strategy_kind.value}"
        )
        logger.info("=" * 60)

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._shutdown_event.clear()

        # Setup signal handlers FIRST to catch early signals
        self._setup_signal_handlers()

        try:
            self._init_alerts()
            self._init_wallet()
            await self._init_chain()
            self._init_pool()
            self._init_swaps()
            self._init_manager()

            if self._shutdown_event.is_set():
                logger.info("Shutdown requested during startup")
                return ManagedState.no_position()

            state = await self._manager.discover()

            logger.info("=" * 60)
            logger.info("Bot started successfully")
            logger.info("Press Ctrl+C to stop")
            logger.info("=" * 60)

            if self._alert_manager:
                await asyncio.to_thread(
                    self._alert_manager.send_alert,
                    title="🚀 Rebalancer Started",
                    message=f"Mode: {'paper' if self.config.dry_run else 'live'}\nState: {state}",
                    dedup_key="startup",
                )

            return await self._run_loop(state, max_ticks)

        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the bot gracefully."""
        if not self._running:
            return

        logger.info("Shutting down...")
        self._running = False
        self._shutdown_event.set()

        if self._manager:
            self._manager.stop()
            self._log_stats()

        # Close clients in reverse order of creation
        if self._swaps:
            try:
                await self._swaps.close()
            except Exception as e:
                logger.warning(f"Error closing swap client: {e}")

        if self._chain:
            try:
                await self._chain.close()
            except Exception as e:
                logger.warning(f"Error closing chain client: {e}")

        logger.info("Shutdown complete")

    def request_shutdown(self, reason: str = "manual") -> None:
        """Request a graceful shutdown."""
        if not self._running:
            return
        logger.warning(f"Shutdown requested: {reason}")
        self._shutdown_event.set()
        if self._manager:
            self._manager.stop()

    # =========================================================================
    # Initialization
    # =========================================================================

    def _init_alerts(self) -> None:
        self._alert_manager = AlertManager(
            telegram_bot_token=self.config.telegram_bot_token,
            telegram_chat_id=self.config.telegram_chat_id,
        )
        if self._alert_manager.enabled:
            logger.info("Alerts: Telegram enabled")
        else:
            logger.info("Alerts: Telegram not configured")

    def _init_wallet(self) -> None:
        if self.config.wallet_private_key:
            self._keypair = load_keypair(self.config.wallet_private_key)
        elif self.config.dry_run:
            # Paper trading needs a public key only
            self._keypair = Keypair()
        else:
            raise ConfigurationError("Live mode requires WALLET_PRIVATE_KEY")

        logger.info(f"Wallet: {self._keypair.pubkey()}")

    async def _init_chain(self) -> None:
        if self.config.dry_run:
            ledger = self._create_paper_ledger()
            self._chain = PaperChainClient(ledger)
            logger.info(
                f"Chain: PAPER (A={self.config.paper_balance_a}, "
                f"B={self.config.paper_balance_b}, SOL={self.config.paper_native_balance})"
            )
            return

        self._chain = SolanaChainClient(self.config.rpc_url, commitment=self.config.commitment)
        if not await self._chain.is_connected():
            raise StartupError(f"RPC endpoint unreachable: {self.config.rpc_url}")
        logger.info(f"Chain: {self.config.rpc_url} ({self.config.commitment})")

    def _create_paper_ledger(self) -> PaperLedger:
        scale = Decimal(10) ** PAPER_TOKEN_DECIMALS
        ledger = PaperLedger(
            mint_a=self.config.token_a_mint,
            mint_b=self.config.token_b_mint,
            decimals_a=PAPER_TOKEN_DECIMALS,
            decimals_b=PAPER_TOKEN_DECIMALS,
            price=self.config.paper_price,
            native_lamports=int(self.config.paper_native_balance * LAMPORTS_PER_SOL),
        )
        if self.config.paper_balance_a > 0:
            ledger.fund(ledger.mint_a, int(self.config.paper_balance_a * scale))
        if self.config.paper_balance_b > 0:
            ledger.fund(ledger.mint_b, int(self.config.paper_balance_b * scale))
        return ledger

    def _init_pool(self) -> None:
        registry = get_default_registry()

        # Register built-in adapters if not already registered
        if PAPER_ADAPTER_NAME not in registry:
            registry.register(PAPER_ADAPTER_NAME, paper_adapter_factory)

        if self.config.dry_run:
            if self.config.pool_adapter and self.config.pool_adapter != PAPER_ADAPTER_NAME:
                logger.info(f"Dry run: ignoring POOL_ADAPTER={self.config.pool_adapter}")
            adapter_name = PAPER_ADAPTER_NAME
        else:
            adapter_name = self.config.pool_adapter

        try:
            factory = registry.resolve(adapter_name)
        except AdapterNotFoundError as e:
            raise ConfigurationError(str(e)) from e

        self._pool = factory(self._chain, self._keypair, self.config)
        logger.info(f"Pool adapter: '{adapter_name}' ({type(self._pool).__name__})")

    def _init_swaps(self) -> None:
        if self.config.dry_run:
            self._swaps = PaperSwapClient(self._chain.ledger)
        else:
            self._swaps = JupiterSwapClient(base_url=self.config.swap_api_url)
        logger.info(f"Swaps: {type(self._swaps).__name__}")

    def _init_manager(self) -> None:
        balances = BalanceTracker(
            self._chain,
            self._keypair.pubkey(),
            self.config.token_a_mint,
            self.config.token_b_mint,
        )
        self._manager = PositionManager(
            pool=self._pool,
            balances=balances,
            swap_client=self._swaps,
            chain_client=self._chain,
            signer=self._keypair,
            config=self.config.to_manager_config(),
            clock=self._clock,
            alert_manager=self._alert_manager,
        )

    # =========================================================================
    # Run loop
    # =========================================================================

    async def _run_loop(self, state: ManagedState, max_ticks: Optional[int]) -> ManagedState:
        """Run the position manager until it returns or shutdown is requested."""
        run_task = asyncio.create_task(self._manager.run(state, max_ticks=max_ticks))
        stop_task = asyncio.create_task(self._shutdown_event.wait())

        done, _ = await asyncio.wait(
            {run_task, stop_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        if run_task in done:
            stop_task.cancel()
            return run_task.result()

        # Shutdown: the loop is sleeping or mid-tick; cancel it
        self._manager.stop()
        run_task.cancel()
        try:
            await run_task
        except asyncio.CancelledError:
            logger.info("Position manager cancelled")
        return self._manager.state or state

    def _log_stats(self) -> None:
        stats = self._manager.stats
        uptime = ""
        if self._started_at:
            uptime = f", uptime={datetime.now(timezone.utc) - self._started_at}"
        logger.info(
            f"Final stats: ticks={stats.ticks}, swaps={stats.swaps_executed}, "
            f"created={stats.positions_created}, removed={stats.positions_removed}, "
            f"failed={stats.failed_actions}, errors={stats.tick_errors}{uptime}"
        )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}")
            self.request_shutdown(f"signal {sig}")

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="dlmm-rebalancer",
        description="DLMM liquidity position rebalancer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Run against the paper simulation (no transactions sent)",
    )
    mode.add_argument(
        "--live",
        action="store_true",
        help="Trade for real (overrides DRY_RUN)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    parser.add_argument(
        "--max-ticks",
        type=int,
        default=None,
        help="Stop after N ticks (default: run forever)",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to .env file (default: .env)",
    )
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    """Async main function."""
    try:
        config = BotConfig.from_env()

        # Override with command line args
        if args.dry_run:
            config.dry_run = True
        elif args.live:
            config.dry_run = False

        config.validate()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    bot = RebalancerBot(config)

    try:
        await bot.start(max_ticks=args.max_ticks)
        return 0
    except (ConfigurationError, StartupError) as e:
        logger.error(f"Startup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
        return 0
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Load .env file
    load_env_file(args.env_file)

    log_level = args.log_level or os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))

    pid_file = os.environ.get("PID_FILE", DEFAULT_PID_FILE)

    # Ensure only one bot instance runs at a time
    try:
        with singleton_lock(pid_file):
            try:
                return asyncio.run(main_async(args))
            except KeyboardInterrupt:
                return 0
    except SingletonBotError as e:
        logger.error(str(e))
        print(f"\n❌ {e}\n", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
