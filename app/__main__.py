from app import create_app


app = create_app()
cfg = app.config["CFG"]
app.run(host=cfg.HOST, port=cfg.PORT)
