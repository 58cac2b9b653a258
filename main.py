#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Точка входа
Запуск HTTP API и служебные команды (ежедневный сброс, привычки по умолчанию)

Версия: 1.0.0
Дата: 2025-07-14
"""

import argparse
import asyncio
import json
import logging
import logging.config
import sys

from config import config

logger = logging.getLogger(__name__)

# ===== НАСТРОЙКА ЛОГИРОВАНИЯ =====

def setup_logging(debug: bool = False):
    """Настройка системы логирования из конфигурации"""
    logging_config = config.get_logging_config()
    if debug:
        for handler in logging_config['handlers'].values():
            handler['level'] = 'DEBUG'
        logging_config['loggers']['']['level'] = 'DEBUG'
    logging.config.dictConfig(logging_config)

# ===== КОМАНДЫ =====

def run_server(args):
    """Запуск HTTP API через uvicorn"""
    import uvicorn

    logger.info(f"🚀 Запуск MindReset Engine на http://{args.host}:{args.port}")
    if config.server.debug_mode:
        logger.info(f"📚 API документация: http://{args.host}:{args.port}/api/docs")

    uvicorn.run(
        "dashboard.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
        server_header=False
    )

async def run_reset(args) -> dict:
    """Ежедневный сброс для одного или всех владельцев"""
    from services import close_all_services, get_service_manager, initialize_all_services
    from services.scheduler import run_daily_reset

    if not initialize_all_services():
        raise RuntimeError("Не удалось инициализировать сервисы")
    manager = get_service_manager()
    try:
        if args.owner:
            return {args.owner: await manager.habit_service.daily_reset(args.owner)}
        return await run_daily_reset(manager.habit_service, manager.profiles)
    finally:
        await close_all_services()

async def run_defaults(args) -> list:
    """Привычки по умолчанию для владельца"""
    from services import close_all_services, get_service_manager, initialize_all_services

    if not initialize_all_services():
        raise RuntimeError("Не удалось инициализировать сервисы")
    manager = get_service_manager()
    try:
        created = await manager.habit_service.setup_default_habits(args.owner)
        return [habit.title for habit in created]
    finally:
        await close_all_services()

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='MindReset Engine: привычки и расписания')
    parser.add_argument('--debug', action='store_true', help='Подробное логирование')
    # без подкоманды запускается сервер
    parser.set_defaults(host=config.server.host, port=config.server.port, reload=False)
    subparsers = parser.add_subparsers(dest='command')

    serve = subparsers.add_parser('serve', help='Запуск HTTP API')
    serve.add_argument('--port', type=int, default=config.server.port, help='Порт сервера')
    serve.add_argument('--host', default=config.server.host, help='Хост сервера')
    serve.add_argument('--reload', action='store_true', help='Автоперезагрузка при изменениях')

    reset = subparsers.add_parser('reset', help='Ежедневный сброс выполнения привычек')
    reset.add_argument('--owner', help='Только для указанного владельца')

    defaults = subparsers.add_parser('defaults', help='Создать привычки по умолчанию')
    defaults.add_argument('--owner', required=True, help='Идентификатор владельца')

    subparsers.add_parser('info', help='Показать текущую конфигурацию')
    return parser

def main(argv=None):
    """Главная функция запуска"""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(debug=args.debug)

    command = args.command or 'serve'

    try:
        if command == 'serve':
            run_server(args)
        elif command == 'reset':
            results = asyncio.run(run_reset(args))
            print(json.dumps(results, ensure_ascii=False, indent=2))
        elif command == 'defaults':
            titles = asyncio.run(run_defaults(args))
            print(json.dumps(titles, ensure_ascii=False))
        elif command == 'info':
            print(json.dumps(config.to_dict(), ensure_ascii=False, indent=2))
    except KeyboardInterrupt:
        logger.info("👋 Остановлено пользователем")
    except Exception as e:
        logger.error(f"💥 Критическая ошибка: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
