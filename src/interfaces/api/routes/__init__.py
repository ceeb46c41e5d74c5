"""API routes package.

本模块保持无副作用（不要在 import 时自动导入各路由），路由挂载在 `src/interfaces/api/app.py` 中显式完成。
"""

__all__: list[str] = []
