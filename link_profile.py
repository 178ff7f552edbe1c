"""Скрипт для привязки Telegram аккаунта к профилю."""

import sys
import argparse
from datetime import datetime
from typing import Optional
from dotenv import load_dotenv
from birthday_logic.database import (
    get_profile,
    link_telegram_account,
    update_birthday,
    update_digest_time,
)
from birthday_logic.supabase_client import get_supabase_service_client

load_dotenv()


def link_profile(
    profile_id: str,
    telegram_id: int,
    birthday: Optional[str] = None,
    digest_time: Optional[str] = None,
) -> bool:
    """
    Привязывает Telegram к профилю и, опционально, задает дату рождения и время рассылки.

    Args:
        profile_id: ID профиля в Supabase
        telegram_id: Telegram ID пользователя
        birthday: Дата рождения в формате YYYY-MM-DD
        digest_time: Время ежедневной рассылки HH:MM

    Returns:
        True если профиль найден и обновлен
    """
    client = get_supabase_service_client()

    print("Привязка Telegram аккаунта...")
    print("=" * 50)

    profile = get_profile(client, profile_id)
    if profile is None:
        print(f"❌ Профиль {profile_id} не найден")
        return False

    if profile.telegram_id and profile.telegram_id != telegram_id:
        print(f"\n⚠️ Профиль уже привязан к Telegram ID {profile.telegram_id}, перепривязываем...")

    link_telegram_account(client, profile_id, telegram_id)
    print(f"✅ {profile.display_name} привязан к Telegram ID {telegram_id}")

    if birthday:
        update_birthday(client, profile_id, datetime.strptime(birthday, "%Y-%m-%d").date())
        print(f"✅ Дата рождения: {birthday}")

    if digest_time:
        update_digest_time(client, profile_id, digest_time)
        print(f"✅ Время рассылки: {digest_time}")

    print("\n" + "=" * 50)
    print("Теперь можно написать боту /start.")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Привязка Telegram аккаунта к профилю")
    parser.add_argument("--profile-id", type=str, help="ID профиля в Supabase")
    parser.add_argument("--telegram-id", type=int, help="Telegram ID пользователя")
    parser.add_argument("--birthday", type=str, help="Дата рождения (YYYY-MM-DD)")
    parser.add_argument("--digest-time", type=str, help="Время ежедневной рассылки (HH:MM)")

    args = parser.parse_args()

    if not args.profile_id or not args.telegram_id:
        print("Использование:")
        print("  python3 link_profile.py --profile-id <uuid> --telegram-id 123456789 "
              "[--birthday 1990-03-10] [--digest-time 09:00]")
        sys.exit(1)

    try:
        linked = link_profile(args.profile_id, args.telegram_id, args.birthday, args.digest_time)
    except KeyboardInterrupt:
        print("\n\n❌ Прервано пользователем")
        sys.exit(1)
    except ValueError as e:
        print(f"\n❌ Ошибка: {e}")
        sys.exit(1)

    sys.exit(0 if linked else 1)
