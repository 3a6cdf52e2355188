from pharmasync import create_app

app = create_app()
