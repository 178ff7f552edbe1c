"""Сервис для напоминаний о днях рождения друзей."""

import logging
from datetime import date
from typing import Any, Callable, List, Optional

from supabase import Client

from .birthdays import birthday_alerts
from .database import get_friends
from .schemas import BirthdayAlert, Person

logger = logging.getLogger(__name__)

# Сколько имен перечислять в одном сообщении
MAX_NAMES_IN_MESSAGE = 5


class BirthdayNotificationService:
    """Сервис для отправки напоминаний о днях рождения в Telegram."""

    def __init__(self, bot: Optional[Any] = None):
        """
        Инициализирует сервис уведомлений.

        Args:
            bot: Экземпляр Telegram бота для отправки сообщений (опционально)
        """
        self._bot: Optional[Any] = bot
        self._notification_callback: Optional[Callable[[Person, List[BirthdayAlert]], None]] = None

    def set_bot(self, bot: Any) -> None:
        """
        Устанавливает bot instance для отправки уведомлений.

        Args:
            bot: Экземпляр Telegram бота
        """
        self._bot = bot
        logger.info("Bot instance установлен для BirthdayNotificationService")

    def set_callback(self, callback: Optional[Callable[[Person, List[BirthdayAlert]], None]]) -> None:
        """
        Устанавливает callback, который вызывается после успешной рассылки.

        Сигнатура: callback(viewer: Person, alerts: List[BirthdayAlert])
        """
        self._notification_callback = callback
        logger.info("Callback установлен для BirthdayNotificationService")

    def _format_names(self, people: List[Person]) -> str:
        names = [person.display_name for person in people[:MAX_NAMES_IN_MESSAGE]]
        if len(people) > MAX_NAMES_IN_MESSAGE:
            names.append(f"и еще {len(people) - MAX_NAMES_IN_MESSAGE}")
        return ", ".join(names)

    def format_alert(self, alert: BirthdayAlert) -> str:
        """
        Форматирует напоминание.

        Args:
            alert: Напоминание

        Returns:
            Текст сообщения
        """
        names = self._format_names(alert.people)
        if alert.offset_days == 0:
            return f"🎉 Сегодня день рождения: {names}!"
        if alert.offset_days == 1:
            return f"📅 Завтра день рождения: {names}"
        if alert.offset_days == 7:
            return f"📅 Через неделю день рождения: {names}"
        return f"📅 Через {alert.offset_days} дн. день рождения: {names}"

    async def notify_viewer(
        self,
        client: Client,
        viewer: Person,
        reference_date: date,
        offsets: Optional[List[int]] = None,
    ) -> int:
        """
        Отправляет пользователю напоминания о днях рождения его друзей.

        Args:
            client: Клиент Supabase
            viewer: Профиль получателя (должен быть привязан к Telegram)
            reference_date: Дата "сегодня"
            offsets: Смещения напоминаний в днях (по умолчанию из конфигурации)

        Returns:
            Количество отправленных сообщений
        """
        if self._bot is None:
            logger.warning("Bot instance не установлен, уведомление не отправлено")
            return 0

        if not viewer.telegram_id:
            logger.info(f"У профиля {viewer.id} нет telegram_id, уведомление не требуется")
            return 0

        try:
            friends = get_friends(client, viewer.id)
        except Exception as e:
            logger.error(f"Ошибка при получении друзей {viewer.id}: {e}", exc_info=True)
            return 0

        alerts = birthday_alerts(friends, reference_date, offsets)
        if not alerts:
            logger.debug(f"Для {viewer.display_name} нет напоминаний на {reference_date}")
            return 0

        sent = 0
        for alert in alerts:
            try:
                await self._bot.send_message(chat_id=viewer.telegram_id, text=self.format_alert(alert))
                sent += 1
            except Exception as e:
                logger.error(f"Ошибка при отправке напоминания {viewer.telegram_id}: {e}", exc_info=True)

        logger.info(f"Отправлено напоминаний пользователю {viewer.display_name}: {sent}")

        if sent and self._notification_callback:
            try:
                self._notification_callback(viewer, alerts)
            except Exception as e:
                logger.error(f"Ошибка в callback уведомления: {e}", exc_info=True)

        return sent


# Глобальный экземпляр сервиса
_notification_service: Optional[BirthdayNotificationService] = None


def get_notification_service() -> BirthdayNotificationService:
    """
    Получает глобальный экземпляр BirthdayNotificationService.

    Returns:
        Экземпляр BirthdayNotificationService
    """
    global _notification_service
    if _notification_service is None:
        _notification_service = BirthdayNotificationService()
    return _notification_service
