# app/infra/db/repo_registrar.py


class RepositoryRegistrar:
    """
    子类定义时自动登记：AppVersionRepository -> "appversion"。
    RepositoryFactory 按这个名字懒加载仓储实例。
    """
    registry: dict[str, type] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__name__ == "BaseRepository":
            return
        name = cls.__name__.replace("Repository", "").lower()
        RepositoryRegistrar.registry[name] = cls
