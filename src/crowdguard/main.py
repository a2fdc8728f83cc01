"""
CrowdGuard Main Application Entry Point

Initializes configuration, logging and the results database, then runs
the crowd validation service until a shutdown signal arrives.
"""

import argparse
import asyncio
import signal
import sys
import traceback
from typing import Any, Dict, Optional

from crowdguard.core.config import ConfigurationManager
from crowdguard.core.database import DatabaseManager
from crowdguard.core.logging import initialize_logging, get_logger
from crowdguard.services.validation import ValidationCollaborators, ValidationService


class CrowdGuardApplication:
    """Main CrowdGuard application class"""

    def __init__(self, config_dir: str = "config",
                 collaborators: Optional[ValidationCollaborators] = None):
        self.config_dir = config_dir
        self.collaborators = collaborators

        self.config_manager: Optional[ConfigurationManager] = None
        self.db_manager: Optional[DatabaseManager] = None
        self.validation_service: Optional[ValidationService] = None
        self.logger = None

        self.running = False
        self.shutdown_event = asyncio.Event()

    async def initialize(self):
        """Initialize all application components"""
        print("Initializing CrowdGuard...")

        try:
            self.config_manager = ConfigurationManager(self.config_dir)
            self.config_manager.load_config()

            initialize_logging(self.config_manager.config)
            self.logger = get_logger('main')

            self.logger.info("CrowdGuard starting up...")
            self.logger.info(f"Version: {self.config_manager.get('app.version', '1.0.0')}")

            db_path = self.config_manager.get('database.path', 'data/crowdguard.db')
            max_connections = self.config_manager.get('database.max_connections', 10)
            self.db_manager = DatabaseManager(db_path, max_connections)

            self.validation_service = ValidationService.from_config(
                self.config_manager,
                collaborators=self.collaborators,
                db=self.db_manager
            )

            self.logger.info("Core systems initialized successfully")

        except Exception as e:
            if self.logger:
                self.logger.error(f"Failed to initialize application: {e}", exc_info=True)
            else:
                print(f"Failed to initialize application: {e}")
                traceback.print_exc()
            raise

    async def start(self):
        """Start the application and block until shutdown"""
        await self.initialize()

        self.running = True
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, self._signal_handler, signum)

        try:
            await self.validation_service.start()
            self.logger.info("CrowdGuard is now running")
            await self.shutdown_event.wait()
            self.logger.info("Shutdown signal received")
        except Exception as e:
            self.logger.error(f"Application error: {e}", exc_info=True)
            raise
        finally:
            for signum in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(signum)
            await self.shutdown()

    def _signal_handler(self, signum):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signum}")
        self.shutdown_event.set()

    async def shutdown(self):
        """Shutdown the application gracefully"""
        if not self.running:
            return

        self.logger.info("Shutting down CrowdGuard...")
        self.running = False

        try:
            if self.validation_service:
                await self.validation_service.stop()

            if self.db_manager:
                self.db_manager.close()

            self.logger.info("CrowdGuard shutdown complete")

        except Exception as e:
            self.logger.error(f"Error during shutdown: {e}")

    def get_system_status(self) -> Dict[str, Any]:
        """Get system status"""
        status = {'running': self.running}
        if self.validation_service:
            status['validation'] = self.validation_service.get_status()
        return status


def main():
    """Console entry point"""
    parser = argparse.ArgumentParser(description="CrowdGuard crowd validation service")
    parser.add_argument("--config-dir", default="config", help="Directory holding default.yaml/config.yaml")
    args = parser.parse_args()

    app = CrowdGuardApplication(config_dir=args.config_dir)

    try:
        asyncio.run(app.start())
    except KeyboardInterrupt:
        print("\nApplication interrupted")
    except Exception as e:
        print(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
