"""Structural tests for route code.

Verifies that routes follow the service/route separation rule:
- Routes may not parse archives or markup themselves
- Routes may only import from allowed modules
- Conversion routes delegate to the upload service
"""

import ast
from pathlib import Path

import pytest


def get_routes_dir() -> Path:
    """Get the path to the routes directory."""
    # Navigate from tests/ to epubsplit/api/routes/
    tests_dir = Path(__file__).parent
    return tests_dir.parent / "epubsplit" / "api" / "routes"


def get_all_route_files() -> list[Path]:
    """Get all Python files in the routes directory."""
    routes_dir = get_routes_dir()
    if not routes_dir.exists():
        return []
    return [f for f in routes_dir.iterdir() if f.suffix == ".py" and f.name != "__init__.py"]


def _imported_modules(tree: ast.AST) -> list[str]:
    modules = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            modules.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            modules.append(node.module)
    return modules


class TestForbiddenImports:
    """Tests that route files don't import forbidden modules."""

    # Parsing libraries belong to the services layer
    FORBIDDEN_IMPORT_PREFIXES = [
        "zipfile",
        "xml",
        "lxml",
        "html2text",
        "epubsplit.services.epub_archive",
        "epubsplit.services.chapter_splitter",
    ]

    ALLOWED_MODULES = [
        "datetime",
        "fastapi",
        "typing",
        "epubsplit.responses",
        "epubsplit.errors",
        "epubsplit.schemas",
        "epubsplit.services",
    ]

    @pytest.fixture
    def route_files(self) -> list[Path]:
        """Get all route files to test."""
        files = get_all_route_files()
        assert len(files) > 0, "No route files found to test"
        return files

    def test_no_parsing_imports(self, route_files: list[Path]):
        """Route files must not import archive or markup parsers."""
        for route_file in route_files:
            tree = ast.parse(route_file.read_text())
            for module in _imported_modules(tree):
                for prefix in self.FORBIDDEN_IMPORT_PREFIXES:
                    if module == prefix or module.startswith(prefix + "."):
                        pytest.fail(f"{route_file.name}: Forbidden import '{module}'.")

    def test_only_allowed_imports(self, route_files: list[Path]):
        """Route files import only from the allowed module list."""
        for route_file in route_files:
            tree = ast.parse(route_file.read_text())
            for module in _imported_modules(tree):
                allowed = any(
                    module == ok or module.startswith(ok + ".") for ok in self.ALLOWED_MODULES
                )
                assert allowed, f"{route_file.name}: import of '{module}' is not allowed"

    def test_convert_routes_use_upload_service(self):
        """The conversion routes go through epubsplit.services."""
        source = (get_routes_dir() / "convert.py").read_text()
        assert "epubsplit.services" in source
        assert "convert_upload" in source


class TestRouteFileStructure:
    """Tests for overall route file structure."""

    def test_all_routes_have_router(self):
        """All route files must define a 'router' object."""
        for route_file in get_all_route_files():
            tree = ast.parse(route_file.read_text())

            has_router = any(
                isinstance(node, ast.Assign)
                and any(isinstance(t, ast.Name) and t.id == "router" for t in node.targets)
                for node in ast.walk(tree)
            )

            assert has_router, f"{route_file.name} must define a 'router' object"

    def test_route_handlers_return_known_types(self):
        """Handlers return dict (success_response), Response, or a response schema."""
        for route_file in get_all_route_files():
            tree = ast.parse(route_file.read_text())

            for node in ast.walk(tree):
                if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    continue
                is_route_handler = any(
                    isinstance(d, ast.Call)
                    and isinstance(d.func, ast.Attribute)
                    and isinstance(d.func.value, ast.Name)
                    and d.func.value.id == "router"
                    for d in node.decorator_list
                )
                if is_route_handler and isinstance(node.returns, ast.Name):
                    assert node.returns.id in ("dict", "Response", "ConversionOut"), (
                        f"{route_file.name}:{node.name} returns {node.returns.id}"
                    )


class TestLauncher:
    """Tests for the uvicorn entrypoint."""

    def test_launcher_exposes_app_with_all_routes(self):
        from apps.api.main import app

        paths = {route.path for route in app.routes}
        assert {"/health", "/convertEpubToChapters", "/convertEpubToMd"} <= paths
