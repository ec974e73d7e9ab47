import logging
import sys
import typing
from pathlib import Path

logger = logging.getLogger(__name__)

PROJECT_BASE = "acmebot"


class PluginRegistry:
    """A central place to register and load plugins, i.e. challenge provisioners and certificate stores.

    Plugins that are derived from a base class are stored in that base class's registry.
    Base classes announce themselves by calling :meth:`get_registry` right after their definition.
    """

    _registry_map = dict()

    def __init__(self):
        self._subclasses = dict()

    @classmethod
    def load_plugins(cls, path: str) -> None:
        """Imports all modules under the given path, so that their plugins get registered.

        Modules whose name starts with an underscore are skipped, as are modules that fail to
        import, e.g. because an optional dependency is missing.

        :param path: The path to load plugins from, relative to the package.
        """
        module_base_name = f"{PROJECT_BASE}.{path}"

        try:
            __import__(module_base_name)
        except ModuleNotFoundError:
            logger.warning(
                "Could not find the plugins directory in ./%s/%s",
                PROJECT_BASE,
                path,
            )
            return

        for module_path in sorted(Path(sys.modules[module_base_name].__file__).parent.iterdir()):
            if module_path.suffix != ".py" or module_path.stem.startswith("_"):
                continue

            module_name = f"{module_base_name}.{module_path.stem}"
            logger.debug("Loading %s", module_name)
            try:
                __import__(module_name)
            except Exception as e:
                logger.info("Could not load %s: %s", module_name, e)

    @classmethod
    def get_registry(cls, plugin_parent_cls: type) -> "PluginRegistry":
        """Gets the plugin registry for the given parent class.

        :param plugin_parent_cls: The parent class.
        :return: The plugin registry for the given parent class.
        """
        return cls._registry_map.setdefault(plugin_parent_cls, PluginRegistry())

    @classmethod
    def register_plugin(cls, config_name: str):
        """Decorator that registers a class as a plugin under the given name.
        The name is used to refer to the class in config files, via the *type* key.

        :param config_name: The plugin's name in config files
        :raises: :class:`ValueError` If the class does not derive from a base class with a registry.
        :return: The registered plugin class.
        """

        def deco(plugin_cls):
            for registered_parent, registry in cls._registry_map.items():
                if issubclass(plugin_cls, registered_parent):
                    registry._subclasses[config_name] = plugin_cls
                    return plugin_cls

            raise ValueError(f"{plugin_cls.__name__} does not derive from a plugin base class")

        return deco

    def config_mapping(self) -> typing.Dict[str, type]:
        """Maps plugin config names to the actual class objects.

        :return: Mapping from config names to the actual class objects.
        """
        return self._subclasses

    def get_plugin(self, config_name: str) -> type:
        """Queries the registry for a plugin by config name.

        :param config_name: The plugin's config name
        :raises: :class:`ValueError` If no plugin is registered by the given name
        :return: The found plugin class
        """
        if config_name not in (plugin_names := self._subclasses.keys()):
            raise ValueError(
                f"The plugin {config_name} has not been registered. Valid options: "
                f"{', '.join([plugin for plugin in plugin_names])}."
            )

        return self._subclasses[config_name]

    def create(self, cfg) -> typing.Any:
        """Instantiates the plugin that the given config object belongs to.

        :param cfg: The plugin's parsed config section, carrying its *type*.
        :return: The plugin instance.
        """
        return self.get_plugin(cfg.type)(cfg)
