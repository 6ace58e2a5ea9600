def main():
    from .aps import create_cli

    cli = create_cli()
    cli()


if __name__ == "__main__":
    main()
