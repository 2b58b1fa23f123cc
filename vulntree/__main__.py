import sys

from vulntree.app import run


def main():
    """ Entrypoint when is installed via pip """
    sys.exit(run())


# Development mode
if __name__ == "__main__":
    main()
