SETTINGS = {"logging": {"level": "DEBUG"}, "service": {"port": 3000}}
