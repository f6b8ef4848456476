from cosmos_exporter.server import main

if __name__ == '__main__':
    main()
