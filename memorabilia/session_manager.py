import logging
from typing import Callable, Dict

from memorabilia.session_controller import SessionController


class SessionManager:
    def __init__(self, controller_factory: Callable[[str, str], SessionController]):
        self.controller_factory = controller_factory
        self.active_controllers: Dict[str, SessionController] = {}

    def connect(self, player_id: str, display_name: str | None = None) -> SessionController:
        """Return the controller of the player, creating it on first use

        Args:
            player_id (str): Player identity
            display_name (str, optional): Shown on the leaderboard, defaults to player_id

        Returns:
            SessionController: One controller per player
        """
        controller = self.active_controllers.get(player_id)
        if controller is None:
            controller = self.controller_factory(player_id, display_name or player_id)
            self.active_controllers[player_id] = controller
            logging.info(f"Controller created for player {player_id}")
        elif display_name:
            controller.display_name = display_name
        return controller

    def get(self, player_id: str) -> SessionController | None:
        return self.active_controllers.get(player_id)

    async def disconnect(self, player_id: str) -> None:
        """Abandon the player's session and drop the controller"""
        controller = self.active_controllers.pop(player_id, None)
        if controller is None:
            return
        await controller.abandon()

    async def close(self) -> None:
        for player_id in list(self.active_controllers):
            try:
                await self.disconnect(player_id)
            except Exception as e:
                logging.error(f"Failed to close session of {player_id}: {e}")
