"""
Code Insight: audit system for frontend projects

Система аудита фронтенд-проекта для поиска проблем в:
- Безопасности (секреты, XSS, eval)
- Производительности (бандлы, утечки, синхронный I/O)
- Доступности (alt, labels, клавиатура, контраст)
- Тестовой инфраструктуре
- Зависимостях (package.json, node_modules, npm audit)

Usage:
    code-insight run --project-root path/to/project
"""

__version__ = "1.0.0"
